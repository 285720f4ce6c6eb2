"""
Centralized logging service for MarketDesk.
Provides structured logging with database storage and easy integration.
"""

import json
import logging
import traceback
from datetime import datetime

from flask import request, has_request_context, session

console = logging.getLogger('marketdesk')


class LoggingService:
    """Centralized logging service for application-wide logging"""

    _db = None

    @staticmethod
    def configure(db):
        """Attach the marketing database; until then entries only reach the console"""
        LoggingService._db = db

    @staticmethod
    def _get_request_context():
        """Extract request context information"""
        if not has_request_context():
            return None, None, None, None

        ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
        if ip_address and ',' in ip_address:
            ip_address = ip_address.split(',')[0].strip()

        user_agent = request.headers.get('User-Agent', '')
        user_id = session.get('auth_user_id')
        return ip_address, user_agent, request.path, user_id

    @staticmethod
    def _console(level, source, message, details=None):
        text = f"[{source}] {message}"
        if details:
            text += f" | {details}"
        console.log(getattr(logging, level.upper(), logging.INFO), text)

    @staticmethod
    def log(level, source, message, details=None, user_id=None):
        """
        Log a message to the database

        Args:
            level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            source (str): Source component (contacts, campaigns, email, etc.)
            message (str): Main log message
            details (str/dict): Additional details (will be JSON-encoded if dict)
            user_id (str): Optional user identifier
        """
        if isinstance(details, (dict, list)):
            details = json.dumps(details, indent=2, default=str)

        db = LoggingService._db
        if db is None:
            LoggingService._console(level, source, message, details)
            return

        try:
            ip_address, user_agent, request_path, session_user = LoggingService._get_request_context()
            db.query("""
                INSERT INTO app_logs
                (timestamp, level, source, message, details, ip_address, user_agent, request_path, user_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                datetime.now().isoformat(), level.upper(), source, message, details,
                ip_address, user_agent, request_path, user_id or session_user
            ))
        except Exception as e:
            # Fallback to console logging if database fails
            LoggingService._console(level, source, message, details)
            console.warning(f"Logging service error: {e}")

    @staticmethod
    def debug(source, message, details=None, user_id=None):
        LoggingService.log('DEBUG', source, message, details, user_id)

    @staticmethod
    def info(source, message, details=None, user_id=None):
        LoggingService.log('INFO', source, message, details, user_id)

    @staticmethod
    def warning(source, message, details=None, user_id=None):
        LoggingService.log('WARNING', source, message, details, user_id)

    @staticmethod
    def error(source, message, details=None, user_id=None):
        LoggingService.log('ERROR', source, message, details, user_id)

    @staticmethod
    def log_user_action(source, action, user_id=None, details=None):
        """Log user actions (role changes, sends, imports)"""
        LoggingService.info(source, f"User action: {action}", details, user_id)

    @staticmethod
    def log_error_with_traceback(source, error, details=None):
        """Log error with full traceback"""
        error_details = {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'traceback': traceback.format_exc()
        }
        if details:
            error_details['additional_details'] = details

        console.error(f"[{source}] {type(error).__name__}: {error}")
        LoggingService.error(source, f"Exception occurred: {type(error).__name__}", error_details)

    @staticmethod
    def log_security_event(message, details=None):
        """Log security-related events"""
        LoggingService.warning('security', message, details)

    @staticmethod
    def get_recent_logs(limit=100, level=None, source=None):
        """Most recent log entries, newest first"""
        if LoggingService._db is None:
            return []
        conditions = []
        params = []
        if level:
            conditions.append("level = ?")
            params.append(level.upper())
        if source:
            conditions.append("source = ?")
            params.append(source)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return LoggingService._db.query(
            f"SELECT * FROM app_logs {where} ORDER BY id DESC LIMIT ?",
            params + [int(limit)],
        ).rows


def db_log(level, source, message, details=None):
    """Shorthand used by feature modules"""
    LoggingService.log(level, source, message, details)
