from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from .settings import settings


logger = logging.getLogger(__name__)

TUTOR_PROMPT = """You are an expert AI tutor for an adaptive learning platform called AdaptLearn. You help students with their doubts and learning needs.

Your capabilities:
1. **Doubt Clarification**: Answer questions clearly with step-by-step explanations
2. **Concept Breakdown**: Break complex topics into simple, digestible parts
3. **Examples & Analogies**: Use real-world examples to make concepts relatable
4. **Study Strategies**: Provide tips for better understanding and retention
5. **Analysis**: Identify knowledge gaps and suggest areas for improvement

Guidelines:
- Be patient, friendly, and encouraging
- Use markdown formatting for better readability (bullet points, code blocks, headers)
- If a concept is complex, break it into numbered steps
- Ask clarifying questions if the doubt is unclear

Current context: {context}"""

ANALYZE_PROMPT = """You are an AI learning analyst. Analyze the student's conversation and provide insights.

Your analysis should include:
1. **Topics Covered**: List the main topics discussed
2. **Understanding Level**: Assess the student's grasp (Beginner/Intermediate/Advanced)
3. **Knowledge Gaps**: Identify areas that need more attention
4. **Strengths**: Note concepts the student understands well
5. **Recommendations**: Suggest next topics to study or resources

Format your response with clear markdown headings and bullet points.
Be constructive and encouraging in your feedback."""

EMPTY_REPLY = "I apologize, but I could not generate a response. Please try again."

MODES = ("tutor", "analyze")


class CompletionError(RuntimeError):
	pass


class CompletionRateLimited(CompletionError):
	pass


class CompletionUnavailable(CompletionError):
	pass


def build_messages(
	messages: Optional[List[Dict[str, str]]] = None,
	*,
	message: Optional[str] = None,
	mode: str = "tutor",
	context: Optional[str] = None,
) -> List[Dict[str, str]]:
	if mode == "analyze":
		system = ANALYZE_PROMPT
	else:
		system = TUTOR_PROMPT.format(context=context or "General learning assistance")
	chat: List[Dict[str, str]] = [{"role": "system", "content": system}]
	if messages:
		chat.extend({"role": m["role"], "content": m["content"]} for m in messages)
	elif message:
		chat.append({"role": "user", "content": message})
	return chat


@dataclass
class Endpoint:
	"""One OpenAI-compatible chat completions URL with its credentials."""

	name: str
	url: str
	model: str
	api_key: str
	extra_headers: Dict[str, str] = field(default_factory=dict)
	params: Dict[str, Any] = field(default_factory=dict)

	def headers(self) -> Dict[str, str]:
		out = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
		out.update({k: v for k, v in self.extra_headers.items() if v})
		return out

	def payload(self, chat: List[Dict[str, str]]) -> Dict[str, Any]:
		return {"model": self.model, "messages": chat, **self.params}


def openrouter_endpoint() -> Optional[Endpoint]:
	if not settings.openrouter_api_key:
		return None
	return Endpoint(
		name="openrouter",
		url=settings.openrouter_base_url,
		model=settings.openrouter_model,
		api_key=settings.openrouter_api_key,
		extra_headers={"HTTP-Referer": settings.openrouter_referer, "X-Title": settings.openrouter_title},
	)


class CompletionClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		key = api_key or settings.completion_api_key
		if not key:
			raise ValueError("COMPLETION_API_KEY is not configured")
		self.primary = Endpoint(
			name="gateway",
			url=base_url or settings.completion_base_url,
			model=model or settings.completion_model,
			api_key=key,
			params={"max_tokens": settings.completion_max_tokens, "temperature": settings.completion_temperature},
		)
		self.fallback = openrouter_endpoint()
		self._client = httpx.AsyncClient(timeout=30)

	async def complete(
		self,
		messages: Optional[List[Dict[str, str]]] = None,
		*,
		message: Optional[str] = None,
		mode: str = "tutor",
		context: Optional[str] = None,
	) -> str:
		chat = build_messages(messages, message=message, mode=mode, context=context)
		try:
			return await self._post(self.primary, chat)
		except (CompletionRateLimited, CompletionUnavailable):
			# Quota answers from the gateway go straight back to the caller
			raise
		except (CompletionError, httpx.RequestError) as primary_err:
			if self.fallback is None:
				raise
			logger.warning("primary completion failed (%s); trying %s", primary_err, self.fallback.name)
			try:
				return await self._post(self.fallback, chat)
			except Exception as fallback_err:
				raise CompletionError(
					f"Primary completion failed ({primary_err}); fallback via {self.fallback.name} also failed"
				) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()

	async def _post(self, endpoint: Endpoint, chat: List[Dict[str, str]]) -> str:
		r = await self._client.post(endpoint.url, headers=endpoint.headers(), json=endpoint.payload(chat))
		if r.status_code == 429:
			raise CompletionRateLimited("Rate limit exceeded. Please try again in a moment.")
		if r.status_code == 402:
			raise CompletionUnavailable("Service temporarily unavailable. Please try again later.")
		if r.status_code >= 400:
			raise CompletionError(f"AI Gateway error: {r.status_code}")
		try:
			data = r.json()
		except ValueError:
			raise CompletionError(f"Unexpected gateway response: {r.text}")
		return _extract_reply(data)


def _extract_reply(data: Any) -> str:
	try:
		content = data["choices"][0]["message"]["content"]
	except (KeyError, IndexError, TypeError):
		return EMPTY_REPLY
	return content or EMPTY_REPLY
