"""
Main orchestrator for Entra Audit.

This module contains the batch loop that reads an input CSV, runs each row
through the selected audit against Microsoft Graph, and reports the results.
Row-level failures are counted and never abort the run.
"""

import sys
import logging
import importlib
from datetime import datetime
from typing import Dict, Any, List, Optional

from entra_audit.audits import AVAILABLE_AUDITS
from entra_audit.audits.base import AuditBase, AuditError
from entra_audit.config import load_config, ConfigurationError
from entra_audit.graph_client import GraphClient, GraphAPIError, GraphAuthenticationError
from entra_audit.logging_setup import setup_logging, security_logger
from entra_audit.models import InputRecord, ResultRow, RunCounters
from entra_audit.reporting import render_results, render_progress, render_summary, export_csv
from entra_audit.sources import CSVRowSource, InputFileError

logger = logging.getLogger(__name__)

# Exit codes
EXIT_OK = 0
EXIT_UNHEALTHY = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 3
EXIT_UNEXPECTED = 4
EXIT_INPUT_ERROR = 5


class AuditRunner:
    """
    Runs one audit over one input file.

    Records are processed strictly in file order, one at a time. Results are
    accumulated in memory and reported once the file is exhausted.
    """

    def __init__(self, audit_name: Optional[str] = None, input_path: Optional[str] = None,
                 output_path: Optional[str] = None, key_column: Optional[str] = None,
                 group_id: Optional[str] = None, config_path: Optional[str] = None):
        """
        Initialize audit runner.

        Args:
            audit_name: Name of the audit module to run
            input_path: CSV file of identity keys
            output_path: Optional CSV file for the results
            key_column: Overrides the configured key column
            group_id: Overrides audits.device_groups.group_id
            config_path: Path to configuration file
        """
        self.audit_name = audit_name
        self.input_path = input_path
        self.output_path = output_path
        self.key_column = key_column
        self.group_id = group_id
        self.config_path = config_path

        self.config = None
        self.client = None
        self.audit = None

        self.counters = RunCounters()
        self.results: List[ResultRow] = []
        self.run_stats = {
            'start_time': None,
            'end_time': None,
            'runtime_seconds': 0
        }

    def run(self) -> int:
        """
        Run the audit.

        Returns:
            Exit code (0 whenever the batch completes, however many rows failed)
        """
        try:
            self.run_stats['start_time'] = datetime.now()

            self._load_configuration()
            self._setup_logging()
            self._apply_overrides()

            logger.info(f"Starting audit '{self.audit_name}' on {self.input_path}")

            self._create_client()
            self.audit = self._load_audit(self.audit_name)
            self.audit.prepare()

            source = self._open_source()
            self.client.authenticate()

            self._process_records(source)

            self.run_stats['end_time'] = datetime.now()
            self.run_stats['runtime_seconds'] = (
                self.run_stats['end_time'] - self.run_stats['start_time']
            ).total_seconds()

            self._report()
            self._log_summary()
            return EXIT_OK

        except (ConfigurationError, AuditError) as e:
            logger.error(f"Configuration error: {e}")
            return EXIT_CONFIG_ERROR
        except GraphAuthenticationError as e:
            logger.error(f"Graph authentication failed: {e}")
            return EXIT_AUTH_ERROR
        except GraphAPIError as e:
            logger.error(f"Graph client unavailable: {e}")
            return EXIT_AUTH_ERROR
        except InputFileError as e:
            logger.error(f"Input file error: {e}")
            return EXIT_INPUT_ERROR
        except Exception as e:
            logger.error(f"Unexpected error: {e}", exc_info=True)
            return EXIT_UNEXPECTED
        finally:
            self._cleanup()

    def _load_configuration(self):
        """Load and validate configuration."""
        try:
            self.config = load_config(self.config_path)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")
        security_logger.log_configuration_access(self.config_path or 'config.yaml')

    def _setup_logging(self):
        """Configure logging based on configuration."""
        setup_logging(self.config.get('logging', {}))

    def _apply_overrides(self):
        """Apply command-line values on top of the configuration."""
        if not self.audit_name:
            raise ConfigurationError("No audit selected")
        if not self.input_path:
            raise ConfigurationError("No input file given")

        if self.group_id:
            self.config['audits'].setdefault('device_groups', {})['group_id'] = self.group_id

    def _create_client(self):
        """Create the Graph client shared by every directory component."""
        self.client = GraphClient(self.config['graph'])

    def _load_audit(self, audit_name: str) -> AuditBase:
        """Dynamically load an audit module and create its audit instance."""
        if audit_name not in AVAILABLE_AUDITS:
            raise AuditError(f"Unknown audit '{audit_name}' (available: {', '.join(AVAILABLE_AUDITS)})")

        try:
            audit_module = importlib.import_module(f"entra_audit.audits.{audit_name}")
        except ImportError as e:
            raise AuditError(f"Failed to import audit module {audit_name}: {e}")

        audit_class = None
        for attr_name in dir(audit_module):
            attr = getattr(audit_module, attr_name)
            if (isinstance(attr, type) and
                    issubclass(attr, AuditBase) and
                    attr is not AuditBase):
                audit_class = attr
                break

        if not audit_class:
            raise AuditError(f"No AuditBase subclass found in module {audit_name}")

        audit = audit_class(self.client, self.config)
        if self.key_column:
            audit.input_config[audit.key_column_setting] = self.key_column
        return audit

    def _open_source(self) -> CSVRowSource:
        """Open the input file; failures here are fatal."""
        input_config = self.config.get('input', {})
        return CSVRowSource(
            self.input_path,
            self.audit.key_column,
            encoding=input_config.get('encoding', 'utf-8-sig'),
            delimiter=input_config.get('delimiter', ',')
        ).open()

    def _process_records(self, source: CSVRowSource):
        """Run every record through the audit, reporting progress at a fixed cadence."""
        interval = self.config.get('reporting', {}).get('progress_interval', 50)

        for record in source:
            self._process_record(record, source.key_column)
            if self.counters.total_processed % interval == 0:
                self._report_progress()

        # Always one line on completion, including for a file with no data rows
        if self.counters.total_processed == 0 or self.counters.total_processed % interval != 0:
            self._report_progress()

    def _process_record(self, record: InputRecord, key_column: str):
        """Process a single record; any failure is counted against it and the batch moves on."""
        self.counters.total_processed += 1

        key = record.get(key_column)
        if not key:
            self.counters.record_error('empty_key')
            logger.warning(f"Row {record.line_number}: empty '{key_column}' value, skipping")
            return

        try:
            rows = self.audit.process(key, record)
        except (GraphAPIError, AuditError) as e:
            self.counters.record_error(e.kind)
            logger.warning(f"Row {record.line_number} ({key}): {e}")
            return
        except Exception as e:
            self.counters.record_error('unexpected')
            logger.error(f"Row {record.line_number} ({key}): unexpected error: {e}", exc_info=True)
            return

        self.results.extend(rows)
        self.counters.result_count += len(rows)

    def _report_progress(self):
        logger.info(f"Progress: {self.counters.total_processed} processed, "
                    f"{self.counters.error_count} errors, {self.counters.result_count} results")
        render_progress(self.counters.total_processed, self.counters)

    def _report(self):
        """Export when an output path was given, then print results and counters."""
        if self.output_path:
            export_csv(self.results, self.output_path, self.audit.columns)

        if self.audit.reports_results:
            try:
                render_results(self.results, self.audit.columns, self.audit.title)
            except Exception as e:
                logger.warning(f"Could not render result table: {e}")

        render_summary(self.counters, self.audit.result_label)

    def _log_summary(self):
        """Log final run statistics."""
        runtime = self.run_stats['runtime_seconds']
        runtime_str = f"{runtime:.2f} seconds"
        if runtime > 60:
            runtime_str = f"{int(runtime // 60)}m {runtime % 60:.1f}s"

        logger.info("=== Audit Summary ===")
        logger.info(f"Audit: {self.audit_name}")
        logger.info(f"Total runtime: {runtime_str}")
        logger.info(f"Records processed: {self.counters.total_processed}")
        logger.info(f"Errors: {self.counters.error_count}")
        for kind, count in sorted(self.counters.errors_by_kind.items()):
            logger.info(f"  {kind}: {count}")
        logger.info(f"{self.audit.result_label}: {self.counters.result_count}")

    def health_check(self) -> Dict[str, Any]:
        """
        Perform a health check of the audit system.

        Returns:
            Dictionary containing health status and details
        """
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'checks': {}
        }

        try:
            self._load_configuration()
            health_status['checks']['configuration'] = {
                'status': 'pass',
                'message': 'Configuration loaded successfully'
            }
        except Exception as e:
            health_status['checks']['configuration'] = {
                'status': 'fail',
                'message': f'Configuration error: {e}'
            }
            health_status['status'] = 'unhealthy'
            return health_status

        try:
            with GraphClient(self.config['graph']) as client:
                client.authenticate()
            health_status['checks']['graph'] = {
                'status': 'pass',
                'message': 'Graph access token obtained'
            }
        except Exception as e:
            health_status['checks']['graph'] = {
                'status': 'fail',
                'message': f'Graph authentication failed: {e}'
            }
            health_status['status'] = 'unhealthy'

        audit_checks = {}
        for audit_name in AVAILABLE_AUDITS:
            try:
                self._load_audit(audit_name)
                audit_checks[audit_name] = {
                    'status': 'pass',
                    'message': 'Module loaded successfully'
                }
            except Exception as e:
                audit_checks[audit_name] = {
                    'status': 'fail',
                    'message': f'Module loading failed: {e}'
                }
                health_status['status'] = 'unhealthy'
        health_status['checks']['audits'] = audit_checks

        return health_status

    def _cleanup(self):
        """Clean up resources."""
        if self.client:
            self.client.close_connection()


def main():
    """Main entry point for the application."""
    import argparse
    import json

    parser = argparse.ArgumentParser(description='Audit Microsoft Entra ID objects listed in a CSV file')
    parser.add_argument('audit', nargs='?', choices=AVAILABLE_AUDITS, help='Audit to run')
    parser.add_argument('--config', '-c', help='Path to configuration file')
    parser.add_argument('--input', '-i', help='Input CSV file')
    parser.add_argument('--output', '-o', help='Write results to this CSV file')
    parser.add_argument('--column', help='Name of the key column in the input file')
    parser.add_argument('--group-id', help='Target group id for the device_groups audit')
    parser.add_argument('--health-check', action='store_true',
                        help='Perform health check instead of an audit')

    args = parser.parse_args()

    if args.health_check:
        runner = AuditRunner(config_path=args.config)
        health_status = runner.health_check()
        print(json.dumps(health_status, indent=2))
        sys.exit(EXIT_OK if health_status['status'] == 'healthy' else EXIT_UNHEALTHY)

    if not args.audit or not args.input:
        parser.error('an audit and --input are required unless --health-check is given')

    runner = AuditRunner(
        audit_name=args.audit,
        input_path=args.input,
        output_path=args.output,
        key_column=args.column,
        group_id=args.group_id,
        config_path=args.config
    )
    sys.exit(runner.run())


if __name__ == "__main__":
    main()
