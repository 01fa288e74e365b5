#!/usr/bin/env python
import os
import sys
from pathlib import Path

# Domain packages (routing, orders, drivers, dispatch) live one level up.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def main():
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "marketplace_backend.settings")
    from django.core.management import execute_from_command_line

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
