"""
Comic CMS package.

This package provides a FastAPI application for building multi-page comics
(image + caption panels) and sharing them through a read-only viewer. Rows
live in a SQL store and images in S3-compatible object storage; both have
in-memory doubles for development and tests.
"""
