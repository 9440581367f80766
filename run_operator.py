#!/usr/bin/env python3
"""
Wrapper script to run the stasher-operator with Kopf.

Kopf hosts the process (startup/cleanup, probes, logging, event posting);
the reconciliation engine itself is started by the startup handler.

Usage:
    python run_operator.py [any kopf run arguments]

Examples:
    python run_operator.py --verbose --liveness=http://0.0.0.0:8080/healthz
    python run_operator.py --log-format=json
"""

import sys

if __name__ == '__main__':
    import kopf.cli

    # Registers the startup, cleanup and probe handlers
    import stasher.app  # noqa: F401

    # Behave as if called as: kopf run <args>
    sys.argv.insert(1, 'run')
    sys.argv.append('--standalone')

    sys.exit(kopf.cli.main(prog_name="kopf"))
