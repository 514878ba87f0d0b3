"""
Allow running the package as a module.

This module enables running the package with:
    python -m add_js_extension

It simply delegates to the main() function from add_js_extension.py.
"""

import sys

from .add_js_extension import main

if __name__ == "__main__":
    sys.exit(main())
