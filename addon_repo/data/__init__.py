"""
Building and holding the repository index.

This package is responsible for:
* Determining the data directory (via env var + sensible default).
* Loading and persisting repository-level configuration.
* Running a build (scan, serialize, publish) and keeping the current index.
* Rebuilding the index periodically while the server runs.
"""
