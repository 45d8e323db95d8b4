"""
AWS Lambda function to trigger a dataset sync via the API.

Deploy this to Lambda and schedule with EventBridge. Datasets that are not
due are skipped by the engine, so frequent triggers are cheap.
"""

import json
import os
import urllib.error
import urllib.request
from typing import Any, Dict


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Trigger a sync run via POST /sync/run.

    Environment Variables:
        API_URL: The service URL (e.g., https://xxx.awsapprunner.com)
        SYNC_TIMEOUT: Request timeout in seconds (default: 900)

    Event (all optional): {"phase": "1b", "datasets": ["cbp"], "force": false, "full": false}

    EventBridge Rule Example:
        Schedule: cron(0 6 * * ? *)  # Daily at 06:00 UTC
    """
    api_url = os.environ.get("API_URL")
    if not api_url:
        return {"statusCode": 500, "body": json.dumps({"error": "API_URL environment variable not set"})}

    timeout = int(os.environ.get("SYNC_TIMEOUT", "900"))
    endpoint = f"{api_url.rstrip('/')}/sync/run"

    body = {key: event[key] for key in ("phase", "datasets", "force", "full") if isinstance(event, dict) and key in event}
    request = urllib.request.Request(
        endpoint,
        data=json.dumps(body).encode("utf-8"),
        method="POST",
        headers={"Content-Type": "application/json", "User-Agent": "FedsyncTrigger/1.0"},
    )

    try:
        print(f"Triggering sync at: {endpoint} with {body}")

        with urllib.request.urlopen(request, timeout=timeout) as response:
            result = json.loads(response.read().decode("utf-8"))
            print(f"Sync completed: {json.dumps(result)}")
            return {"statusCode": 200, "body": json.dumps({"success": True, "sync_result": result})}

    except urllib.error.HTTPError as e:
        error_body = e.read().decode("utf-8") if e.fp else str(e)
        print(f"Sync request failed with HTTP {e.code}: {error_body}")
        return {"statusCode": e.code, "body": json.dumps({"success": False, "error": f"HTTP {e.code}: {error_body}"})}

    except urllib.error.URLError as e:
        print(f"Sync request failed: {str(e)}")
        return {"statusCode": 500, "body": json.dumps({"success": False, "error": f"Connection error: {str(e)}"})}


# For local testing
if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1:
        os.environ["API_URL"] = sys.argv[1]

    result = lambda_handler({}, None)
    print(json.dumps(result, indent=2))
