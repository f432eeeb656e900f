"""
Command-line interface for h3stack.

Holds the argument parser, command handlers, console output and the
services that do the actual work.
"""
