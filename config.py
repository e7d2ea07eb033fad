"""
Configuration constants for TestFlight Manager.
Update endpoint paths here if the App Store Connect API changes.
"""

import os

# =============================================================================
# API CONFIGURATION
# =============================================================================
API = {
    "base_url": os.environ.get(
        "TESTFLIGHT_MANAGER_API_URL", "https://api.appstoreconnect.apple.com"
    ),
    "audience": "appstoreconnect-v1",
    "token_lifetime": 20 * 60,  # seconds, Apple rejects anything above 20 minutes
    "token_refresh_margin": 60,  # seconds before expiry to mint a new token
    "request_timeout": 60,  # seconds per request
    "user_agent": "testflight-manager/1.0",
}

# =============================================================================
# ENDPOINTS
# =============================================================================
ENDPOINTS = {
    "apps": "/v1/apps",
    "app_beta_groups": "/v1/apps/{app_id}/betaGroups",
    "app_beta_testers": "/v1/apps/{app_id}/relationships/betaTesters",
    "beta_group": "/v1/betaGroups/{group_id}",
    "beta_group_testers": "/v1/betaGroups/{group_id}/betaTesters",
    "beta_group_tester_links": "/v1/betaGroups/{group_id}/relationships/betaTesters",
    "beta_group_usages": "/v1/betaGroups/{group_id}/metrics/betaTesterUsages",
    "beta_testers": "/v1/betaTesters",
    "beta_tester": "/v1/betaTesters/{tester_id}",
}

# =============================================================================
# LIMITS
# =============================================================================
LIMITS = {
    "page_size": 200,  # maximum page size accepted by the API
    "delete_batch_size": 100,  # tester ids per removal request
    "progress_interval": 500,  # log fetched-tester progress every N testers
}

# =============================================================================
# LOCAL STATE
# =============================================================================
_STATE_DIR = os.environ.get(
    "TESTFLIGHT_MANAGER_HOME",
    os.path.join(os.path.expanduser("~"), ".config", "testflight-mgmt"),
)

PATHS = {
    "state_dir": _STATE_DIR,
    "credentials_file": os.path.join(_STATE_DIR, "credentials.json"),
    "config_file": os.path.join(_STATE_DIR, "config.json"),
    "log_file": os.path.join(_STATE_DIR, "testflight_manager.log"),
}

# =============================================================================
# PROMPTS & MESSAGES
# =============================================================================
TEXT = {
    "dry_run_prompt": "Dry run? (Y/n): ",
    "confirm_removal": "Proceed with removal? (y/N): ",
    "output_path_prompt": "Enter output file path: ",
    "empty_output_path": "Output path cannot be empty.",
    "invalid_format": "Invalid format. Enter 'text' or 'csv'.",
    "login_hint": "Run 'testflight-manager login' before {action}.",
    "config_hint": "Provide {flag} or run 'testflight-manager config' to set a default.",
}
