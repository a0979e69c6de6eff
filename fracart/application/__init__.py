"""
Application layer package.

Contains use cases that orchestrate domain services and ports.
Each use case is a single class with an ``execute`` method.
"""
