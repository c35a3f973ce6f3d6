"""
Unified logging system for the chapter translation workbench
Provides consistent logging across the CLI, the web server and the job queue
"""
import sys
import os
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum


class LogLevel(Enum):
    """Log levels with priority values"""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class LogType(Enum):
    """Types of log messages for special handling"""
    GENERAL = "general"
    LLM_REQUEST = "llm_request"
    KEY_ROTATION = "key_rotation"
    PROGRESS = "progress"
    USAGE = "usage"
    TRANSLATION_START = "translation_start"
    TRANSLATION_END = "translation_end"
    ERROR_DETAIL = "error_detail"


class Colors:
    """ANSI color codes for terminal output"""
    NO_COLOR = os.environ.get('NO_COLOR') is not None or not sys.stdout.isatty()

    YELLOW = '' if NO_COLOR else '\033[93m'       # headers, warnings
    WHITE = '' if NO_COLOR else '\033[97m'        # main text
    GRAY = '' if NO_COLOR else '\033[90m'         # technical details
    ORANGE = '' if NO_COLOR else '\033[38;5;214m' # outgoing requests
    GREEN = '' if NO_COLOR else '\033[92m'        # successes
    RED = '' if NO_COLOR else '\033[91m'          # errors
    ENDC = '' if NO_COLOR else '\033[0m'

    @classmethod
    def disable(cls):
        """Disable all colors"""
        cls.YELLOW = cls.WHITE = cls.GRAY = cls.ORANGE = cls.GREEN = cls.RED = cls.ENDC = ''


class UnifiedLogger:
    """
    Unified logger that provides consistent logging across all interfaces
    """

    def __init__(self,
                 name: str = "ChapterWorkbench",
                 console_output: bool = True,
                 enable_colors: bool = True,
                 min_level: LogLevel = LogLevel.INFO):
        """
        Initialize the unified logger

        Args:
            name: Logger name/identifier
            console_output: Whether to output to console
            enable_colors: Whether to use colored output
            min_level: Minimum log level to display
        """
        self.name = name
        self.console_output = console_output
        self.enable_colors = enable_colors
        self.min_level = min_level

        self.run_state = {
            'model': '',
            'total_units': 0,
            'start_time': None,
            'in_progress': False
        }

        if not enable_colors:
            Colors.disable()

    def _format_timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _format_console_message(self, level: LogLevel, message: str,
                                log_type: LogType = LogType.GENERAL,
                                data: Optional[Dict[str, Any]] = None) -> str:
        """Format message for console output"""
        timestamp = self._format_timestamp()

        level_colors = {
            LogLevel.DEBUG: Colors.GRAY,
            LogLevel.INFO: Colors.WHITE,
            LogLevel.WARNING: Colors.YELLOW,
            LogLevel.ERROR: Colors.RED,
            LogLevel.CRITICAL: Colors.RED
        }
        color = level_colors.get(level, Colors.WHITE)

        if log_type == LogType.LLM_REQUEST:
            return self._format_llm_request(data or {})
        elif log_type == LogType.KEY_ROTATION:
            return self._format_key_rotation(message, data or {})
        elif log_type == LogType.PROGRESS:
            return self._format_progress(data or {})
        elif log_type == LogType.TRANSLATION_START:
            return self._format_translation_start(data or {})
        elif log_type == LogType.TRANSLATION_END:
            return self._format_translation_end(data or {})
        elif log_type == LogType.ERROR_DETAIL:
            return self._format_error_detail(message, data or {})
        else:
            level_str = f"[{level.name}]" if level != LogLevel.INFO else ""
            return f"{color}[{timestamp}] {level_str} {message}{Colors.ENDC}"

    def _format_llm_request(self, data: Dict[str, Any]) -> str:
        """Format an outgoing streaming request"""
        output = [f"{Colors.YELLOW}{'=' * 80}{Colors.ENDC}"]
        timestamp = self._format_timestamp()
        output.append(f"{Colors.YELLOW}[{timestamp}] SENDING TO LLM{Colors.ENDC}")

        if 'title' in data:
            output.append(f"{Colors.WHITE}Chapter: {data['title']}{Colors.ENDC}")
        if 'model' in data:
            output.append(f"{Colors.GRAY}Model: {data['model']}{Colors.ENDC}")
        if 'key' in data:
            output.append(f"{Colors.GRAY}Key: {data['key']}{Colors.ENDC}")

        # Prompts are only echoed in debug mode, they can be very long
        if self.min_level == LogLevel.DEBUG and data.get('user_prompt'):
            output.append(f"\n{Colors.ORANGE}RAW PROMPT (INPUT):{Colors.ENDC}")
            if data.get('system_prompt'):
                output.append(f"{Colors.GRAY}[SYSTEM]{Colors.ENDC}")
                output.append(f"{Colors.ORANGE}{data['system_prompt']}{Colors.ENDC}")
            output.append(f"{Colors.GRAY}[USER]{Colors.ENDC}")
            output.append(f"{Colors.ORANGE}{data['user_prompt']}{Colors.ENDC}")

        return '\n'.join(output)

    def _format_key_rotation(self, message: str, data: Dict[str, Any]) -> str:
        timestamp = self._format_timestamp()
        position = ""
        if 'current' in data and 'total' in data:
            position = f" (key {data['current']}/{data['total']})"
        return f"{Colors.YELLOW}[{timestamp}] [KEY] {message}{position}{Colors.ENDC}"

    def _format_progress(self, data: Dict[str, Any]) -> str:
        """Format progress summary"""
        percentage = data.get('percentage', 0)
        done = data.get('done', 0)
        total = data.get('total', self.run_state['total_units'])

        bar_length = 30
        filled = int(bar_length * percentage / 100)
        bar = '█' * filled + '░' * (bar_length - filled)

        line = f"{Colors.WHITE}PROGRESS: {done}/{total} chapters [{bar}] {percentage:.1f}%"
        eta_ms = data.get('eta_ms')
        if eta_ms:
            line += f" (ETA {eta_ms / 1000:.0f}s)"
        return line + Colors.ENDC

    def _format_translation_start(self, data: Dict[str, Any]) -> str:
        self.run_state.update({
            'model': data.get('model', 'Unknown'),
            'total_units': data.get('total_units', 0),
            'start_time': datetime.now(),
            'in_progress': True
        })

        output = [f"{Colors.YELLOW}TRANSLATION STARTED{Colors.ENDC}"]
        output.append(f"{Colors.GRAY}Model: {self.run_state['model']}{Colors.ENDC}")
        if self.run_state['total_units'] > 0:
            output.append(f"{Colors.WHITE}Chapters queued: {self.run_state['total_units']}{Colors.ENDC}")
        return '\n'.join(output)

    def _format_translation_end(self, data: Dict[str, Any]) -> str:
        output = [f"\n{Colors.WHITE}TRANSLATION COMPLETE{Colors.ENDC}"]

        if self.run_state['start_time']:
            duration = datetime.now() - self.run_state['start_time']
            output.append(f"{Colors.GRAY}Duration: {duration}{Colors.ENDC}")

        if 'succeeded' in data:
            output.append(f"{Colors.GREEN}Succeeded: {data['succeeded']}{Colors.ENDC}")
        if data.get('failed', 0) > 0:
            output.append(f"{Colors.YELLOW}Failed: {data['failed']}{Colors.ENDC}")
        if data.get('stopped'):
            output.append(f"{Colors.YELLOW}Stopped by user{Colors.ENDC}")

        self.run_state['in_progress'] = False
        return '\n'.join(output)

    def _format_error_detail(self, message: str, data: Dict[str, Any]) -> str:
        output = []
        timestamp = self._format_timestamp()
        output.append(f"{Colors.RED}[{timestamp}] ERROR: {message}{Colors.ENDC}")

        if 'details' in data:
            output.append(f"{Colors.RED}Details: {data['details']}{Colors.ENDC}")
        if 'title' in data:
            output.append(f"{Colors.RED}Chapter: {data['title']}{Colors.ENDC}")

        return '\n'.join(output)

    def log(self, level: LogLevel, message: str,
            log_type: LogType = LogType.GENERAL,
            data: Optional[Dict[str, Any]] = None):
        """
        Main logging method

        Args:
            level: Log level
            message: Log message
            log_type: Type of log for special formatting
            data: Additional data for the log entry
        """
        if level.value < self.min_level.value:
            return

        if self.console_output:
            try:
                console_msg = self._format_console_message(level, message, log_type, data)
                if console_msg:
                    print(console_msg, flush=True)
            except UnicodeEncodeError:
                # Windows consoles (cp1252) choke on some characters
                safe_message = message.encode('ascii', 'replace').decode('ascii')
                print(f"[{self._format_timestamp()}] {safe_message}", flush=True)

    # Convenience methods
    def debug(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.DEBUG, message, log_type, data)

    def info(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.INFO, message, log_type, data)

    def warning(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.WARNING, message, log_type, data)

    def error(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        self.log(LogLevel.ERROR, message, log_type, data)


# Global logger instance
_global_logger = None


def get_logger(name: str = "ChapterWorkbench", **kwargs) -> UnifiedLogger:
    """
    Get or create the global logger instance

    Args:
        name: Logger name
        **kwargs: Additional arguments for UnifiedLogger

    Returns:
        UnifiedLogger instance
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = UnifiedLogger(name, **kwargs)
    return _global_logger


def setup_cli_logger(enable_colors: bool = True) -> UnifiedLogger:
    """Setup logger for CLI usage"""
    # Import here to avoid circular dependencies
    from src.config import DEBUG_MODE

    return get_logger(
        console_output=True,
        enable_colors=enable_colors,
        min_level=LogLevel.DEBUG if DEBUG_MODE else LogLevel.INFO
    )


def setup_web_logger() -> UnifiedLogger:
    """Setup logger for the web server (always colored, debug level follows DEBUG_MODE)"""
    from src.config import DEBUG_MODE

    return get_logger(
        console_output=True,
        enable_colors=True,
        min_level=LogLevel.DEBUG if DEBUG_MODE else LogLevel.INFO
    )


# === Module-level convenience functions ===

def log(level: LogLevel, message: str,
        log_type: LogType = LogType.GENERAL,
        data: Optional[Dict[str, Any]] = None):
    """Module-level logging function using the global logger."""
    get_logger().log(level, message, log_type, data)


def debug(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    log(LogLevel.DEBUG, message, log_type, data)


def info(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    log(LogLevel.INFO, message, log_type, data)


def warning(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    log(LogLevel.WARNING, message, log_type, data)


def error(message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
    log(LogLevel.ERROR, message, log_type, data)
