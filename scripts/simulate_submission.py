"""
Simulate a public form submission against a running instance.

Usage:
    python scripts/simulate_submission.py --form <form-uuid>
    python scripts/simulate_submission.py --form <form-uuid> --name "Jane Doe" --email jane@example.com
    python scripts/simulate_submission.py --form <form-uuid> --field-ids name,email,phone --utm-source google
"""
import argparse
import asyncio
import logging

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


async def simulate_submission(
    form_id: str,
    field_ids: list[str],
    name: str,
    email: str,
    phone: str,
    utm_source: str,
    token: str,
):
    """POST one submission. Field ids must match the form schema, in name/email/phone order."""
    values = [name, email, phone]
    payload = {
        "formId": form_id,
        "data": dict(zip(field_ids, values)),
        "recaptchaToken": token,
        "utm": {"source": utm_source} if utm_source else None,
        "referrerUrl": "https://www.google.com/",
        "landingPageUrl": "https://example.com/contact",
    }
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(f"{BASE_URL}/api/v1/leads/submit", json=payload)
        logger.info("Submission response: %s %s", resp.status_code, resp.json())
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Simulate a public form submission")
    parser.add_argument("--form", required=True, help="Form UUID")
    parser.add_argument("--field-ids", default="name,email,phone")
    parser.add_argument("--name", default="John Smith")
    parser.add_argument("--email", default="john.smith@example.com")
    parser.add_argument("--phone", default="+1 512 555 9876")
    parser.add_argument("--utm-source", default="")
    parser.add_argument("--token", default="dev-bypass", help="Anti-spam token (bypass token outside production)")
    args = parser.parse_args()

    logger.info("Simulating submission to form %s...", args.form)
    await simulate_submission(
        args.form,
        [f.strip() for f in args.field_ids.split(",")],
        args.name,
        args.email,
        args.phone,
        args.utm_source,
        args.token,
    )


if __name__ == "__main__":
    asyncio.run(main())
