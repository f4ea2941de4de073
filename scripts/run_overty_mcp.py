#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[overty] browserUrl={os.environ.get('OVERTY_BROWSER_URL', 'http://127.0.0.1:9222')} | "
    f"debug={os.environ.get('OVERTY_DEBUG', '0')} | "
    f"sidecar={os.environ.get('OVERTY_WITH_CHROME_DEVTOOLS', '0')}",
    file=sys.stderr,
)

from mcp_servers.overty.main import main  # noqa: E402

if __name__ == "__main__":
    main()
