"""Amazon SES delivery service."""

from __future__ import annotations

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cadence.core.exceptions import DeliveryError


class SESDeliveryService:
    """IDeliveryService backed by SES ``send_email``.

    Message metadata travels as SES message tags so bounces and opens can be
    joined back to the sequence step.
    """

    def __init__(self, from_email: str, from_name: str = "", region: str = "us-east-1",
                 endpoint_url: str | None = None, configuration_set: str | None = None) -> None:
        self._source = f"{from_name} <{from_email}>" if from_name else from_email
        self._configuration_set = configuration_set
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("ses", **kwargs)

    def send(self, *, to: str, subject: str, body: str, html: str = "",
             metadata: dict[str, str] | None = None) -> str:
        message_body: dict = {"Text": {"Data": body, "Charset": "UTF-8"}}
        if html:
            message_body["Html"] = {"Data": html, "Charset": "UTF-8"}
        request: dict = {
            "Source": self._source,
            "Destination": {"ToAddresses": [to]},
            "Message": {"Subject": {"Data": subject, "Charset": "UTF-8"}, "Body": message_body},
        }
        if metadata:
            request["Tags"] = [
                {"Name": k, "Value": _tag_value(v)} for k, v in metadata.items() if v
            ]
        if self._configuration_set:
            request["ConfigurationSetName"] = self._configuration_set
        try:
            resp = self._client.send_email(**request)
        except (ClientError, BotoCoreError) as exc:
            raise DeliveryError(f"SES send to {to!r} failed: {exc}") from exc
        return resp["MessageId"]


def _tag_value(value: str) -> str:
    # SES tags allow only alphanumerics, '_' and '-'
    return "".join(c if c.isalnum() or c in "_-" else "_" for c in str(value))[:256]
