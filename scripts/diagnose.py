#!/usr/bin/env python3
"""
GA4 Diagnose — page diagnostics, traffic breakdown and daily trends.

Usage:
    python3 diagnose.py solvr pages
    python3 diagnose.py solvr traffic --dim channel
    python3 diagnose.py --list
"""

import sys

from ga_diagnose.cli import main

if __name__ == '__main__':
    sys.exit(main())
