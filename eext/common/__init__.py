"""
Common helpers shared by the pipelines: settings, errors, executors and files
"""
