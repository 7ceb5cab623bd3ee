"""
Incremental semantic index over a folder of markdown notes.
"""
