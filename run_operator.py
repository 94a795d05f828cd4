#!/usr/bin/env python3
"""
Wrapper script to run the VolumeReplicationGroup operator with Kopf.

Loads the operator module, which registers its handlers, then launches
Kopf's CLI with all standard arguments.

Usage:
    python run_operator.py [any kopf run arguments]

Examples:
    python run_operator.py --verbose --all-namespaces
    python run_operator.py -n my-namespace --log-format=json
"""

import sys

if __name__ == '__main__':
    import kopf.cli

    # Registers startup, cleanup and resource handlers via decorators
    import ramen.app  # noqa: F401

    # Behave as if the user called: kopf run <args>
    sys.argv.insert(1, 'run')

    sys.exit(kopf.cli.main(prog_name="kopf"))
