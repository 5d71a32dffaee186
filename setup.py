#!/usr/bin/env python3
"""
Build the ``xpt`` distribution.

To upload to PyPI:

    $ python -m build
    $ twine upload dist/*

"""
# Community Packages
from setuptools import setup

# Metadata, dependencies, and the ``src`` package layout are declared
# in ``setup.cfg``.
setup()
