import os
from typing import Dict, List

DEFAULT_IGNORE_LIST: List[str] = [
    '.git',
    'node_modules',
    'dist',
    '.next',
    '.idea',
    '.vscode',
    '__pycache__',
    'coverage',
    'android',
    'ios',
]

# Sizing
COLLAPSED_MIN_VALUE = 4
MIN_DIRTY_FILE_SIZE = 5000
CHANGED_FILE_WEIGHT = 5
CLEAN_FILE_WEIGHT = 1
# Files with no recorded activity still need some area to stay clickable.
ACTIVITY_FALLBACK_VALUE = 1

COMMIT_HISTORY_LIMIT = 50

STATUS_COLORS: Dict[str, str] = {
    'clean': '#e2e8f0',
    'modified': '#f59e0b',
    'created': '#10b981',
    'deleted': '#ef4444',
    'untracked': '#6366f1',
}

COLLAPSED_COLORS: Dict[str, str] = {
    'created': '#047857',
    'modified': '#b45309',
    'neutral': '#94a3b8',
}

DIRTY_FOLDER_COLOR = '#cbd5e1'
UNKNOWN_STATUS_COLOR = '#cbd5e1'
NEUTRAL_COLOR = '#e2e8f0'
SCALE_LOW_COLOR = '#3b82f6'
SCALE_HIGH_COLOR = '#f97316'

# Transitions (milliseconds)
ENTER_DURATION_MS = 400
UPDATE_DURATION_MS = 400
EXIT_DURATION_MS = 300
TRANSITION_EASE = 'cubic-in-out'

ROOT_KEY = '__root__'

GITHUB_API_URL = os.environ.get('CODEVIZ_GITHUB_API_URL', 'https://api.github.com')
GITHUB_TOKEN = os.environ.get('GITHUB_TOKEN')
