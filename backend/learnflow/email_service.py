from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Dict, Optional

from .repositories import SettingsRepository

logger = logging.getLogger(__name__)

SENDGRID_HOST = "smtp.sendgrid.net"
SENDGRID_PORT = 587


class EmailConfigError(Exception):
	pass


class EmailDeliveryError(Exception):
	pass


@dataclass
class SmtpTransport:
	host: str
	port: int
	username: str
	password: str
	from_email: Optional[str] = None

	@property
	def implicit_tls(self) -> bool:
		# 465 speaks TLS from the first byte; other ports upgrade with STARTTLS
		return self.port == 465


def transport_from_settings(config: Optional[Dict[str, str]], *, provider: Optional[str] = None) -> SmtpTransport:
	if not config:
		raise EmailConfigError("Email settings not found.")
	provider = provider or config.get("provider")
	if not provider or provider == "none":
		raise EmailConfigError("Email provider is not configured.")
	if provider == "smtp":
		host = config.get("smtpHost")
		port = config.get("smtpPort")
		user = config.get("smtpUser")
		password = config.get("smtpPass")
		if not host or not port or not user or not password:
			raise EmailConfigError("SMTP configuration is incomplete. Please check your settings.")
		try:
			port_num = int(port)
		except ValueError:
			raise EmailConfigError(f"Invalid SMTP port: {port}")
		return SmtpTransport(host=host, port=port_num, username=user, password=password, from_email=config.get("fromEmail"))
	if provider == "sendgrid":
		key = config.get("sendgridKey")
		if not key:
			raise EmailConfigError("SendGrid API key is missing.")
		# SendGrid's SMTP relay uses the literal user name "apikey"
		return SmtpTransport(host=SENDGRID_HOST, port=SENDGRID_PORT, username="apikey", password=key, from_email=config.get("fromEmail"))
	raise EmailConfigError(f"Unsupported email provider: {provider}")


class SmtpMailer:
	def __init__(self, settings_repo: SettingsRepository) -> None:
		self._settings_repo = settings_repo

	async def send(
		self,
		to: str,
		subject: str,
		text: str,
		html: Optional[str] = None,
		*,
		from_email: Optional[str] = None,
		provider: Optional[str] = None,
	) -> None:
		transport = transport_from_settings(self._settings_repo.load(), provider=provider)
		msg = EmailMessage()
		msg["From"] = from_email or transport.from_email or transport.username
		msg["To"] = to
		msg["Subject"] = subject
		msg.set_content(text)
		if html:
			msg.add_alternative(html, subtype="html")
		await asyncio.to_thread(self._deliver, transport, msg)
		logger.info("Email sent to %s via %s", to, transport.host)

	@staticmethod
	def _deliver(transport: SmtpTransport, msg: EmailMessage) -> None:
		try:
			if transport.implicit_tls:
				server = smtplib.SMTP_SSL(transport.host, transport.port, timeout=30)
			else:
				server = smtplib.SMTP(transport.host, transport.port, timeout=30)
				server.starttls()
			try:
				server.login(transport.username, transport.password)
				server.send_message(msg)
			finally:
				server.quit()
		except smtplib.SMTPException as e:
			raise EmailDeliveryError(f"Failed to send email: {e}") from e
		except OSError as e:
			raise EmailDeliveryError(f"Failed to send email: {e}") from e
