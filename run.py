# -*- coding: utf-8 -*-

"""
Main entry point for running bcfsleuth from a source checkout.
"""

import sys

from bcfsleuth.cli import main

if __name__ == '__main__':
    sys.exit(main())
