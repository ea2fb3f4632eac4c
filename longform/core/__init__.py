"""
Configuration, errors, logging and external storage for the longform worker.
"""
