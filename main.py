"""
TaskFlow — Entry Point.

Single entry point: `python main.py` starts the sync and reminder loops.
"""

from taskflow.runtime import main

if __name__ == "__main__":
    main()
