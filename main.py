#!/usr/bin/env python3
"""
FileMaker Server Certificate Manager - Main Entry Point.

Requests, renews and delivers a Let's Encrypt certificate for FileMaker
Server using a DNS-01 challenge. Meant to be run on a schedule with the
same parameters every time; each run decides on its own whether there is
anything to do.

Usage:
    # Request or renew a staging certificate
    sudo python main.py --hostname fms.example.com --email admin@example.com \\
        --do-token dop_v1_xxx

    # Production certificate, imported and activated
    sudo python main.py --hostname fms.example.com --email admin@example.com \\
        --do-token dop_v1_xxx --fms-username admin --fms-password secret \\
        --live --import-cert --restart-fms
"""

import sys

from fms_cert_manager.cli import main


if __name__ == "__main__":
    sys.exit(main())
