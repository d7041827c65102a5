"""Configuration for GitLab review analytics."""

import os

from dotenv import load_dotenv

load_dotenv()

# Auth: personal, project or group access token
GITLAB_TOKEN = os.environ.get("GITLAB_TOKEN")
GITLAB_URL = os.environ.get("GITLAB_URL", "https://gitlab.com/api/v4")

# Default look-back window ("7d", "30d" or "90d")
DEFAULT_TIMEFRAME = os.environ.get("TIMEFRAME", "30d")

# Retrieval settings
PER_PAGE = 100  # Max items per API page
MAX_PAGES = 10  # Merge request listing stops after this many pages
REQUEST_TIMEOUT = 30.0

# Analysis settings
ANALYSIS_TIMEOUT = float(os.environ.get("ANALYSIS_TIMEOUT", "45"))  # Whole operation, seconds
MR_ANALYSIS_TIMEOUT = 15.0  # Per merge request, seconds
MAX_DETAILED_ANALYSIS = 50  # Larger sets are sampled
MR_BATCH_SIZE = 5
NOTES_BATCH_SIZE = 3  # Note-heavy stages use smaller batches
PROJECT_BATCH_SIZE = 5
BATCH_DELAY = 0.2  # Seconds between batches
COMPLEXITY_BATCH_DELAY = 0.1
