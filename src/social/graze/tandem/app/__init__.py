"""
tandem Application Layer

Command line entry points and configuration.

Key Components:
- config.py: Configuration management using Pydantic settings
- cli.py: The ``tandem`` command, logging setup and step rendering

The CLI owns all presentation: actions report structured steps and results,
and cli.py decides how they are printed.
"""
