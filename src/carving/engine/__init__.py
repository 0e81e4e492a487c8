"""
Carving engine integration: command line, executable lookup, process
lifecycle and report parsing.
"""
