#!/usr/bin/env python3
"""
Validate the team alias table.

Checks gridlines/data/team_aliases.json (or a file given on the command
line) for aliases claimed by two teams and malformed tokens.

Usage:
    python scripts/validate_team_aliases.py
    python scripts/validate_team_aliases.py path/to/team_aliases.json
"""
import argparse
import sys
from pathlib import Path

from gridlines.services.sync.utils.name_normalizer import (
    build_alias_table,
    load_alias_document,
    validate_alias_table,
)


def main():
    parser = argparse.ArgumentParser(description='Validate a team alias table')
    parser.add_argument('path', nargs='?', help='Alias JSON file (defaults to the packaged table)')
    args = parser.parse_args()

    text = Path(args.path).read_text(encoding='utf-8') if args.path else None
    document = load_alias_document(text)
    problems = validate_alias_table(document)

    teams = document['teams']
    print(f"Alias table version {document.get('version', 'unknown')}: "
          f"{len(teams)} teams, {len(build_alias_table(document))} lookup keys")

    if problems:
        print(f"❌ {len(problems)} problems found:")
        for problem in problems:
            print(f"   • {problem}")
        return 1

    print("✅ No problems found")
    return 0


if __name__ == '__main__':
    sys.exit(main())
