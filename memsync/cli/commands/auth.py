"""Authentication commands: device-flow login, status, logout."""

import json
import logging
from typing import TYPE_CHECKING

from memsync.github.device_flow import DeviceCode, DeviceFlow
from memsync.protocols import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    RemoteUnavailableError,
)

if TYPE_CHECKING:
    from memsync import MemoryClient, MemsyncConfig

logger = logging.getLogger(__name__)


def _show_code(code: DeviceCode) -> None:
    print("\nGitHub Authentication Required:")
    print(f"Visit: {code.verification_uri}")
    print(f"Enter code: {code.user_code}\n")


def cmd_auth(args, client: "MemoryClient", config: "MemsyncConfig"):
    """Handle auth subcommands."""
    credentials = client.credentials

    if args.auth_action == "login":
        flow = DeviceFlow(config.client_id, web_url=config.web_url)
        try:
            credentials.device_login(flow, _show_code)
        except AuthorizationTimeoutError:
            print("✗ Timed out waiting for authorization")
            return 1
        except (AuthorizationDeniedError, RemoteUnavailableError) as e:
            print(f"✗ {e}")
            return 1
        print(f"✓ Authenticated. Token saved to {config.token_file}")
        return 0

    if args.auth_action == "logout":
        if credentials.clear_token():
            print(f"✓ Removed {config.token_file}")
        else:
            print("No saved token to remove")
        return 0

    # status
    source = credentials.token_source()
    if args.json:
        print(json.dumps({"authenticated": source is not None, "source": source}, indent=2))
    elif source:
        print(f"✓ Authenticated via {source}")
    else:
        print("✗ Not authenticated")
    return 0 if source else 1
