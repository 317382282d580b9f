#!/usr/bin/env python3
"""
Simple script to run the FoundIt API server from the root directory.
"""

import sys

from api.main import main

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user")
        sys.exit(0)
