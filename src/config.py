"""
Centralized configuration class
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv

# Setup debug logger for configuration
_config_logger = logging.getLogger('config')

# Check for DEBUG_MODE early (before .env is loaded, check environment)
_debug_mode = os.getenv('DEBUG_MODE', 'false').lower() == 'true'
if _debug_mode:
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug("DEBUG_MODE enabled - verbose logging active")

# Get config directory (current working directory)
_config_dir = Path.cwd()
_env_file = _config_dir / '.env'

if _debug_mode:
    _config_logger.debug(f"Looking for .env at: {_env_file.absolute()} (exists: {_env_file.exists()})")

# Load .env file if it exists
_dotenv_result = load_dotenv(_env_file)
if _debug_mode:
    _config_logger.debug(f"load_dotenv() returned: {_dotenv_result}")


def parse_key_list(raw: Optional[str]) -> List[str]:
    """
    Split a comma or newline separated list of API keys.

    Blank entries are dropped and duplicates removed while keeping the
    first occurrence, so the resulting order is the rotation order.
    """
    if not raw:
        return []
    keys = []
    for part in raw.replace('\n', ',').split(','):
        key = part.strip()
        if key and key not in keys:
            keys.append(key)
    return keys


# Provider credentials
GEMINI_API_KEYS = parse_key_list(os.getenv('GEMINI_API_KEYS', os.getenv('GEMINI_API_KEY', '')))
GEMINI_API_BASE = os.getenv('GEMINI_API_BASE', 'https://generativelanguage.googleapis.com/v1beta')

CEREBRAS_API_KEYS = parse_key_list(os.getenv('CEREBRAS_API_KEYS', ''))
CEREBRAS_API_ENDPOINT = 'https://api.cerebras.ai/v1/chat/completions'

# GPT-OSS: any OpenAI-compatible server (vLLM, llama.cpp, LM Studio, ...)
GPT_OSS_API_KEYS = parse_key_list(os.getenv('GPT_OSS_API_KEYS', ''))
GPT_OSS_BASE_URL = os.getenv('GPT_OSS_BASE_URL', '')
GPT_OSS_MODEL_NAME = os.getenv('GPT_OSS_MODEL_NAME', '')

# Translation defaults
DEFAULT_MODEL = os.getenv('DEFAULT_MODEL', 'gemini-2.5-flash')
DEFAULT_TEMPERATURE = float(os.getenv('DEFAULT_TEMPERATURE', '0.7'))
DEFAULT_THINKING_BUDGET = int(os.getenv('DEFAULT_THINKING_BUDGET', '2048'))
REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '900'))

# Queue pacing and retry
PACING_BUFFER_MS = int(os.getenv('PACING_BUFFER_MS', '200'))
DEFAULT_RATE_LIMIT_PER_MINUTE = int(os.getenv('DEFAULT_RATE_LIMIT_PER_MINUTE', '10'))
OVERLOAD_MAX_ATTEMPTS = int(os.getenv('OVERLOAD_MAX_ATTEMPTS', '3'))
OVERLOAD_INITIAL_DELAY_MS = int(os.getenv('OVERLOAD_INITIAL_DELAY_MS', '2000'))

# ETA estimation
DURATION_HISTORY_SIZE = int(os.getenv('DURATION_HISTORY_SIZE', '20'))
DEFAULT_JOB_DURATION_MS = int(os.getenv('DEFAULT_JOB_DURATION_MS', '30000'))

# Shared usage counter (best effort, local state stays authoritative)
USAGE_SYNC_URL = os.getenv('USAGE_SYNC_URL', 'https://jsonbase.com/chapter-workbench-gemini-usage-v2')
USAGE_SYNC_ENABLED = os.getenv('USAGE_SYNC_ENABLED', 'true').lower() == 'true'
USAGE_SYNC_TIMEOUT = int(os.getenv('USAGE_SYNC_TIMEOUT', '10'))

# Local persistence
STATE_DB_PATH = os.getenv('STATE_DB_PATH', 'data/workbench.db')
PERSIST_DEBOUNCE_MS = int(os.getenv('PERSIST_DEBOUNCE_MS', '300'))

# Web server
PORT = int(os.getenv('PORT', '5000'))
HOST = os.getenv('HOST', '127.0.0.1')
DEBUG_MODE = _debug_mode

# Requests per minute allowed by each provider/model. Drives inter-job pacing.
MODEL_RATE_LIMITS = {
    'gemini-2.5-flash': 10,
    'gemini-flash-lite-latest': 15,
    'gemini-2.5-pro': 5,
    'gemini-3-pro-preview': 5,
    'cerebras/llama-3.1-70b': 30,
    'cerebras/gpt-oss-120b': 30,
    'gpt-oss/custom': 20,
}

# Successful translations allowed per model per calendar day.
MODEL_DAILY_LIMITS = {
    'gemini-2.5-flash': 250,
    'gemini-flash-lite-latest': 1000,
    'gemini-2.5-pro': 100,
    'gemini-3-pro-preview': 50,
    'cerebras/llama-3.1-70b': 1000,
    'cerebras/gpt-oss-120b': 1000,
    'gpt-oss/custom': 1000,
}


@dataclass
class TranslationOptions:
    """Unified translation options for both CLI and web interfaces"""

    model: str = DEFAULT_MODEL
    system_prompt: Optional[str] = None
    temperature: float = DEFAULT_TEMPERATURE
    thinking_budget: int = DEFAULT_THINKING_BUDGET

    @classmethod
    def from_cli_args(cls, args) -> 'TranslationOptions':
        """Create options from CLI arguments"""
        return cls(
            model=args.model,
            system_prompt=getattr(args, 'system_prompt', None),
            temperature=getattr(args, 'temperature', DEFAULT_TEMPERATURE),
            thinking_budget=getattr(args, 'thinking_budget', DEFAULT_THINKING_BUDGET),
        )

    @classmethod
    def from_web_request(cls, request_data: dict) -> 'TranslationOptions':
        """Create options from web request data"""
        return cls(
            model=request_data.get('model', DEFAULT_MODEL),
            system_prompt=request_data.get('system_prompt') or None,
            temperature=float(request_data.get('temperature', DEFAULT_TEMPERATURE)),
            thinking_budget=int(request_data.get('thinking_budget', DEFAULT_THINKING_BUDGET)),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return {
            'model': self.model,
            'system_prompt': self.system_prompt,
            'temperature': self.temperature,
            'thinking_budget': self.thinking_budget,
        }
