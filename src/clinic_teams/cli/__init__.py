"""Command-line interface for the clinic teams engine"""
