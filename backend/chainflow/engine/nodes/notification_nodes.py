"""
Notification nodes: Telegram messages and SMTP email.

Both resolve their secrets through the credential vault with the run owner's
id and report delivery problems as soft failures, so a flow can react to
``sent: False``.
"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List

import requests

from chainflow.config.settings import get_settings
from chainflow.database.utils.enums import CredentialType
from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import ConfigurationError
from chainflow.engine.nodes.base import NodeHandler, render_template, require
from chainflow.utils.time_utils import utc_now


class TelegramNodeHandler(NodeHandler):
    """
    Send a Telegram message through the Bot API.

    Config: ``{credentialId, message}`` where ``message`` may contain
    ``{{input.field}}`` placeholders. The credential payload is
    ``{token, chatId}``.
    """

    type = "telegram"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        context.logger.info("telegram: preparing message")
        try:
            credential_id = require(node_data, "credentialId")
            template = require(node_data, "message")
            creds = context.credentials.resolve(
                credential_id, context.user_id, CredentialType.TELEGRAM.value
            )
            token, chat_id = creds.get("token"), creds.get("chatId")
            if not token or not chat_id:
                raise ConfigurationError("Invalid credential data: missing token or chatId")

            text = render_template(template, input_data)
            url = f"{get_settings().telegram_api_url}/bot{token}/sendMessage"
            context.logger.info(f"telegram: sending message to chat {chat_id}")
            response = requests.post(
                url,
                json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
                timeout=context.http_timeout,
            )
            result = response.json()
            if not result.get("ok"):
                raise RuntimeError(
                    f"Telegram API error: {result.get('error_code')} - {result.get('description')}"
                )
        except Exception as e:
            context.logger.error(f"telegram: {e}")
            return {"sent": False, "error": str(e), "timestamp": utc_now().isoformat()}

        context.logger.info("telegram: sent successfully")
        return {
            "sent": True,
            "text": text,
            "timestamp": utc_now().isoformat(),
            "input": input_data,
        }


def _recipients(to: Any) -> List[str]:
    if isinstance(to, (list, tuple)):
        return [str(address) for address in to]
    return [address.strip() for address in str(to).split(",") if address.strip()]


class EmailNodeHandler(NodeHandler):
    """
    Send an email over SMTP.

    Config: ``{credentialId, to, subject, body, html=false}``; subject and body
    accept ``{{input.a.b}}`` placeholders. The credential payload is
    ``{host, port, user, pass, secure, from}``.
    """

    type = "email"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        to = node_data.get("to")
        context.logger.info("email: starting execution")
        try:
            credential_id = require(node_data, "credentialId")
            require(node_data, "to")
            subject = render_template(require(node_data, "subject"), input_data)
            body = render_template(require(node_data, "body"), input_data)
            html = bool(node_data.get("html", False))

            creds = context.credentials.resolve(
                credential_id, context.user_id, CredentialType.EMAIL.value
            )
            for field in ("host", "port", "user", "pass"):
                if not creds.get(field):
                    raise ConfigurationError(f"SMTP requires '{field}'")

            sender = creds.get("from") or creds["user"]
            recipients = _recipients(to)
            message = MIMEMultipart("alternative")
            message["Subject"] = subject
            message["From"] = sender
            message["To"] = ", ".join(recipients)
            if creds.get("replyTo"):
                message["Reply-To"] = creds["replyTo"]
            message.attach(MIMEText(body, "html" if html else "plain"))

            context.logger.info(f"email: sending via SMTP ({creds['host']}:{creds['port']})")
            secure = creds.get("secure") in (True, "true")
            smtp_class = smtplib.SMTP_SSL if secure else smtplib.SMTP
            with smtp_class(creds["host"], int(creds["port"]), timeout=context.http_timeout) as smtp:
                if not secure:
                    smtp.starttls()
                smtp.login(creds["user"], creds["pass"])
                smtp.send_message(message, from_addr=sender, to_addrs=recipients)
        except Exception as e:
            context.logger.error(f"email: {e}")
            return {"sent": False, "error": str(e), "to": to, "timestamp": utc_now().isoformat()}

        context.logger.info(f"email: sent to {len(recipients)} recipient(s)")
        return {
            "sent": True,
            "provider": "smtp",
            "to": recipients,
            "subject": subject,
            "from": sender,
            "timestamp": utc_now().isoformat(),
            "input": input_data,
        }
