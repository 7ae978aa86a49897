"""
GA4 Diagnose — run the page, traffic or trend report from a terminal.

Usage:
    ga-diagnose <property_name_or_id> pages [--start 2024-01-01 --end 2024-01-31]
    ga-diagnose <property_name_or_id> pages --format csv > pages.csv
    ga-diagnose <property_name_or_id> traffic --dim channel
    ga-diagnose <property_name_or_id> timeseries --path-contains /blog
    ga-diagnose --list
    ga-diagnose --login     # one-off OAuth browser flow, saves the token

Runs locally with no API key check; the operator's own GA4 credentials
decide what can be read.
"""

import argparse
import json
import sys

from .auth import AccessGate
from .config import Settings, configure_logging
from .errors import ReportError
from .ga4 import GA4Backend, login
from .reports import DEFAULT_END, DEFAULT_START, REPORTS, run_report
from .resolver import TRAFFIC_DIMS
from .serialize import to_csv, to_json


def list_properties(settings: Settings):
    """List known properties."""
    print("\n📋 Known Properties:\n")
    if not settings.properties:
        print("   (none: set GA_DIAGNOSE_PROPERTIES='{\"mysite\": \"123456789\"}')")
    for name, prop_id in settings.properties.items():
        print(f"   {name:<20} → {prop_id}")
    print("\n   Usage: ga-diagnose <name_or_id> pages|traffic|timeseries")


def build_body(args, property_id: str) -> dict:
    body = {'propertyId': property_id, 'startDate': args.start, 'endDate': args.end}
    if args.limit is not None:
        body['limit'] = args.limit
    if args.dim:
        body['dim'] = args.dim
    if args.path_contains:
        body['pagePathContains'] = args.path_contains
    return body


def main(argv=None):
    parser = argparse.ArgumentParser(description='GA4 page diagnostics and traffic reports')
    parser.add_argument('property', nargs='?', help='Property name or ID')
    parser.add_argument('report', nargs='?', choices=sorted(REPORTS), default='pages',
                        help='Report to run (default: pages)')
    parser.add_argument('--start', default=DEFAULT_START, help='Start date (YYYY-MM-DD or NdaysAgo)')
    parser.add_argument('--end', default=DEFAULT_END, help='End date (YYYY-MM-DD, yesterday, today)')
    parser.add_argument('--limit', type=int, help='Max rows')
    parser.add_argument('--dim', choices=sorted(TRAFFIC_DIMS), help='Traffic dimension (traffic report)')
    parser.add_argument('--path-contains', help='Only count pages whose path contains this (timeseries)')
    parser.add_argument('--format', choices=['json', 'csv'], default='json')
    parser.add_argument('--list', action='store_true', help='List known properties')
    parser.add_argument('--login', action='store_true', help='Run the OAuth flow and save a token')
    parser.add_argument('-v', '--verbose', action='store_true')

    args = parser.parse_args(argv)
    settings = Settings.from_env()
    configure_logging('DEBUG' if args.verbose else 'WARNING')

    if args.list:
        list_properties(settings)
        return 0

    try:
        if args.login:
            login(settings)
            print(f"   ✅ Token saved to {settings.token_path}")
            if not args.property:
                return 0

        if not args.property:
            parser.print_help()
            return 1

        if args.format == 'csv' and args.report != 'pages':
            parser.error('--format csv is only available for the pages report')

        property_id = settings.resolve_property(args.property)
        report = run_report(REPORTS[args.report], AccessGate(), GA4Backend(settings),
                            None, build_body(args, property_id))
    except ReportError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1

    if args.format == 'csv':
        sys.stdout.write(to_csv(report))
    else:
        print(json.dumps(to_json(report), indent=2, ensure_ascii=False))
    return 0


if __name__ == '__main__':
    sys.exit(main())
