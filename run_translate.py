"""
Convenience entrypoint for the translate CLI.

Usage:
    python run_translate.py translate --source episode01.txt --batch-size 10 --context-size 5
"""

import sys

from subtitle_agent.main import main


if __name__ == "__main__":
    sys.exit(main())
