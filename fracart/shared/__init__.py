"""
Shared module package.

Cross-cutting concerns used by the HTTP surface of every bounded context:
- Domain error to HTTP response mapping
- Security headers and rate limiting
- Logging configuration
"""
