"""
Entry point for running from a checkout.

This module forwards to the launcher defined in `novelbind.main`, so
that `python main.py 21` behaves like the installed `novelbind 21`
command. Volume configurations, the cover images and the style sheet
are looked up relative to the current directory (see `.env.example`).
"""

import sys

from novelbind.main import main

if __name__ == "__main__":
    sys.exit(main())
