from __future__ import annotations
import base64
import json
import logging
import re
import httpx
from typing import Any, Dict, Optional, Tuple
from .settings import settings

logger = logging.getLogger(__name__)


def extract_json_block(text: str) -> Dict[str, Any]:
	try:
		return json.loads(text)
	except Exception:
		pass
	# Try to locate the first JSON object in the text
	match = re.search(r"\{[\s\S]*\}", text)
	if match:
		candidate = match.group(0)
		try:
			return json.loads(candidate)
		except Exception:
			pass
	raise ValueError("Failed to parse JSON from Gemini output")


def _parse_pcm_rate(mime_type: str, default: int = 24000) -> int:
	# e.g. "audio/L16;codec=pcm;rate=24000"
	match = re.search(r"rate=(\d+)", mime_type or "")
	return int(match.group(1)) if match else default


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		self._base_url_override = base_url
		self._auth_in_query = self.provider != "vertex"
		self.base_url = base_url or self._endpoint_for(self.model)
		self._client = httpx.AsyncClient(timeout=60)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=30)

	def _endpoint_for(self, model: str) -> str:
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			return (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{model}:generateContent"
			)
		# Google AI Studio (Generative Language API)
		return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

	def _auth(self) -> Tuple[Dict[str, Any], Dict[str, str]]:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		return params, headers

	async def generate(self, prompt: str, *, json_output: bool = False) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		if json_output:
			payload["generationConfig"] = {"responseMimeType": "application/json"}
		return await self._post_payload(payload, fallback_prompt=prompt)

	async def generate_json(self, prompt: str) -> Dict[str, Any]:
		raw = await self.generate(prompt, json_output=True)
		return extract_json_block(raw)

	async def synthesize_speech(self, text: str, *, voice: Optional[str] = None, model: Optional[str] = None) -> Tuple[bytes, int]:
		"""Return raw 16-bit mono PCM and its sample rate for ``text``."""
		tts_model = model or settings.gemini_tts_model
		url = self._base_url_override or self._endpoint_for(tts_model)
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": text}]}],
			"generationConfig": {
				"responseModalities": ["AUDIO"],
				"speechConfig": {
					"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice or settings.gemini_tts_voice}},
				},
			},
		}
		params, headers = self._auth()
		r = await self._client.post(url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		try:
			part = r.json()["candidates"][0]["content"]["parts"][0]
			inline = part.get("inlineData") or part.get("inline_data")
			data = base64.b64decode(inline["data"])
			mime = inline.get("mimeType") or inline.get("mime_type") or ""
		except Exception:
			raise RuntimeError("No media returned from TTS API")
		return data, _parse_pcm_rate(mime)

	async def _post_payload(
		self,
		payload: Dict[str, Any],
		*,
		fallback_prompt: Optional[str],
		allow_fallback: bool = True,
	) -> str:
		params, headers = self._auth()
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			if "generationConfig" in payload:
				# Some models reject responseMimeType; retry once without it
				fallback_payload = dict(payload)
				fallback_payload.pop("generationConfig", None)
				try:
					r = await self._client.post(self.base_url, params=params, headers=headers, json=fallback_payload)
					r.raise_for_status()
				except Exception as err:
					last_error = err
			else:
				last_error = http_err
		except httpx.RequestError as net_err:
			last_error = net_err
		if last_error is None:
			try:
				data = r.json()
				return data["candidates"][0]["content"]["parts"][0]["text"]
			except Exception:
				last_error = RuntimeError(f"Unexpected Gemini response: {r.text}")
		logger.warning("Gemini call to %s failed: %s", self.model, last_error)
		if not allow_fallback or not self._fallback_enabled:
			raise last_error or RuntimeError("Gemini call failed and no fallback configured")
		if fallback_prompt is None:
			raise last_error or RuntimeError("Gemini call failed and fallback prompt unavailable")
		return await self._fallback_generate(fallback_prompt, last_error)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, prompt: str, primary_error: Optional[Exception]) -> str:
		if not self._fallback_client or not self._openrouter_api_key:
			raise primary_error or RuntimeError("Fallback requested but OpenRouter is not configured")
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			if primary_error is not None:
				raise RuntimeError(
					f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
				) from fallback_err
			raise fallback_err
