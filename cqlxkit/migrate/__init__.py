"""Ordered CQL schema migrations from a directory of files, with callbacks and checksums."""