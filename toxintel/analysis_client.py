"""
Analysis API Client for Toxic Intelligence
Sends conversation batches to an LLM chat-completions endpoint and gets back
toxicity, sentiment and flags per message. Handles batching, retries and caching.
"""

import re
import time
import json
import logging
import concurrent.futures
from typing import List, Dict, Any, Optional, Sequence

import requests

from . import config
from .cache import ResponseCache
from .models import AnalysisResult, ParsedMessage
from .normalizer import MalformedAnalysisOutput, neutral_results, normalize_results

logger = logging.getLogger(__name__)


class AnalysisCapabilityUnavailable(Exception):
    """Raised when the analysis endpoint cannot be reached or keeps failing."""
    pass


SYSTEM_PROMPT = """You are a chat message analyzer for the Toxic Intelligence Platform.

Your task is to analyze a list of chat messages and return toxicity, sentiment, and flags for each message.

For each message, you must provide:
1. toxicity_score: A number from 0 to 1 where 0 = not toxic at all, 1 = extremely toxic
2. sentiment_score: A number from -1 to 1 where -1 = very negative, 0 = neutral, 1 = very positive
3. flags: An array of strings describing concerning patterns. Possible flags include:
   - "passive_aggressive" - indirect hostility or sarcasm
   - "insult" - direct insults or name-calling
   - "gaslighting" - manipulating someone to question their reality
   - "dismissive" - ignoring or invalidating feelings
   - "threatening" - explicit or implicit threats
   - "guilt_tripping" - using guilt to manipulate
   - "stonewalling" - refusing to communicate
   - "love_bombing" - excessive flattery or attention (potentially manipulative)
   - "blame_shifting" - avoiding responsibility by blaming others

You MUST respond with ONLY a valid JSON array containing one analysis object for each input message, in the same order.

Example input:
[
  {"text": "ทำไมไม่ตอบไลน์", "sender_type": "SELF"},
  {"text": "ก็งานยุ่ง", "sender_type": "OTHER"}
]

Example output:
[
  {"toxicity_score": 0.3, "sentiment_score": -0.2, "flags": ["passive_aggressive"]},
  {"toxicity_score": 0.1, "sentiment_score": -0.1, "flags": ["dismissive"]}
]

Analyze both Thai and English messages. Return ONLY the JSON array, no other text."""

JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

# Status codes that will not get better by retrying
FATAL_STATUS_CODES = {400, 401, 403, 404, 410}


def extract_json_array(content: str) -> Any:
    """
    Pull the JSON array out of a model reply.

    Models sometimes wrap the array in prose or code fences, so the outermost
    [...] span is decoded when present.

    Raises:
        MalformedAnalysisOutput: No decodable JSON in the reply
    """
    if not isinstance(content, str):
        raise MalformedAnalysisOutput(
            f"Expected text content in analysis reply, got {type(content).__name__}"
        )
    match = JSON_ARRAY_RE.search(content)
    candidate = match.group(0) if match else content
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedAnalysisOutput(f"Failed to parse analysis results: {e}") from e


class AnalysisClient:
    """
    Client for the external analysis model with batching and caching.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        concurrent_requests: Optional[int] = None,
        use_cache: Optional[bool] = None,
        cache: Optional[ResponseCache] = None,
        mock_mode: bool = False,
    ):
        """
        Initialize analysis client.

        Args:
            api_key: Bearer token for the endpoint (default from config)
            api_url: Chat-completions URL (default from config)
            model: Model identifier (default from config)
            batch_size: Messages per request (default from config)
            timeout: Per-request timeout in seconds (default from config)
            max_retries: Attempts per batch before giving up (default from config)
            concurrent_requests: Batches in flight at once (default from config)
            use_cache: Whether to use the response cache (default from config)
            cache: Explicit cache instance, implies use_cache
            mock_mode: Return canned/neutral results without network calls
        """
        self.api_key = api_key or config.ANALYSIS_API_KEY
        if not self.api_key and not mock_mode:
            raise ValueError("ANALYSIS_API_KEY not set - add to .env file or pass as argument")

        self.api_url = api_url or config.ANALYSIS_API_URL
        self.model = model or config.ANALYSIS_MODEL
        self.batch_size = batch_size or config.BATCH_SIZE
        self.timeout = timeout or config.API_TIMEOUT
        self.max_retries = max_retries or config.MAX_RETRIES
        self.concurrent_requests = concurrent_requests or config.ANALYSIS_CONCURRENT_REQUESTS

        if use_cache is None:
            use_cache = config.CACHE_ENABLED
        self.cache: Optional[ResponseCache] = cache
        if self.cache is None and use_cache:
            self.cache = ResponseCache()

        self.mock_mode = mock_mode
        self.mock_responses = self._load_mock_responses() if mock_mode else {}

        logger.info(
            f"AnalysisClient initialized (model={self.model}, batch_size={self.batch_size}, "
            f"cache={self.cache is not None}, mock={mock_mode})"
        )

    def _load_mock_responses(self) -> Dict[str, Any]:
        """Load canned per-text results from sample_data/mock_responses.json."""
        mock_path = config.PROJECT_ROOT / "sample_data" / "mock_responses.json"
        if mock_path.exists():
            with open(mock_path, "r", encoding="utf-8") as f:
                return json.load(f)
        logger.debug(f"Mock responses file not found: {mock_path}")
        return {}

    def analyze(self, messages: Sequence[ParsedMessage]) -> List[AnalysisResult]:
        """
        Analyze messages in order.

        Batches are sent concurrently and placed back by offset, so the result
        always lines up one-to-one with the input. A batch that fails is filled
        with neutral results.

        Args:
            messages: Parsed messages, in conversation order

        Returns:
            One AnalysisResult per message
        """
        if not messages:
            return []

        items = [{"text": m.text, "sender_type": m.sender_type.value} for m in messages]
        results: List[Optional[AnalysisResult]] = [None] * len(items)
        batches = [
            (i, items[i:i + self.batch_size])
            for i in range(0, len(items), self.batch_size)
        ]

        logger.info(
            f"Analyzing {len(items)} messages in {len(batches)} batches "
            f"(concurrent={self.concurrent_requests})"
        )

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.concurrent_requests) as executor:
            future_to_batch = {
                executor.submit(self.analyze_batch, batch): (start, batch)
                for start, batch in batches
            }

            for future in concurrent.futures.as_completed(future_to_batch):
                start, batch = future_to_batch[future]
                try:
                    batch_results = normalize_results(future.result(), len(batch))
                except (AnalysisCapabilityUnavailable, MalformedAnalysisOutput) as e:
                    logger.error(f"Batch at offset {start} failed, using neutral results: {e}")
                    batch_results = neutral_results(len(batch))
                results[start:start + len(batch)] = batch_results

        return results

    def analyze_batch(self, items: List[Dict[str, Any]]) -> List[Any]:
        """
        Analyze one batch and return the raw (unnormalized) result list.

        Raises:
            AnalysisCapabilityUnavailable: Endpoint failed after retries
            MalformedAnalysisOutput: Reply did not contain a JSON array
        """
        if self.cache is not None:
            cached = self.cache.get(self.model, items)
            if cached is not None:
                return cached

        if self.mock_mode:
            response = self._mock_query(items)
        else:
            response = self._api_query(items)

        if not isinstance(response, list):
            raise MalformedAnalysisOutput(
                f"Invalid analysis results: expected array, got {type(response).__name__}"
            )

        if self.cache is not None:
            self.cache.set(self.model, items, response)

        return response

    def _build_request(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": json.dumps(items, ensure_ascii=False)},
            ],
            "temperature": config.ANALYSIS_TEMPERATURE,
            "top_p": 1,
            "max_tokens": config.ANALYSIS_MAX_TOKENS,
            "stream": False,
        }

    def _api_query(self, items: List[Dict[str, Any]]) -> Any:
        """
        Query the endpoint for one batch with bounded retries.
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = self._build_request(items)

        last_error = None

        for attempt in range(self.max_retries):
            try:
                response = requests.post(
                    self.api_url,
                    headers=headers,
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.Timeout:
                logger.warning(f"Timeout on attempt {attempt+1}/{self.max_retries}")
                last_error = "Timeout"
                continue
            except requests.RequestException as e:
                logger.warning(f"Request failed on attempt {attempt+1}/{self.max_retries}: {e}")
                last_error = str(e)
                continue

            if response.status_code == 200:
                return self._parse_completion(response)

            if response.status_code in FATAL_STATUS_CODES:
                error_msg = f"Analysis API error {response.status_code}: {response.text[:200]}"
                logger.error(error_msg)
                raise AnalysisCapabilityUnavailable(error_msg)

            if response.status_code == 429:
                wait_time = 5 * (attempt + 1)
                logger.warning(f"Rate limited, waiting {wait_time}s")
                last_error = "Rate limited"
            else:
                wait_time = 2 ** attempt
                logger.warning(
                    f"Server error {response.status_code}, retrying in {wait_time}s "
                    f"(attempt {attempt+1}/{self.max_retries})"
                )
                last_error = f"Server error: {response.status_code}"

            if attempt + 1 < self.max_retries:
                time.sleep(wait_time)

        logger.error(f"All retries failed for {self.model}: {last_error}")
        raise AnalysisCapabilityUnavailable(f"Analysis API unavailable: {last_error}")

    def _parse_completion(self, response: requests.Response) -> Any:
        """Extract the result array from a chat-completions response body."""
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedAnalysisOutput(f"Analysis API returned non-JSON body: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        if not content:
            raise MalformedAnalysisOutput("Invalid response from analysis API: missing content")

        return extract_json_array(content)

    def _mock_query(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Return mock results for testing."""
        neutral = AnalysisResult.neutral().to_dict()
        return [dict(self.mock_responses.get(item["text"], neutral)) for item in items]


def build_default_client(mock_mode: Optional[bool] = None) -> Optional[AnalysisClient]:
    """
    Client configured from the environment.

    Returns None when USE_ANALYSIS is off. Without an API key the client runs in
    mock mode, which yields neutral scores.
    """
    if not config.USE_ANALYSIS:
        logger.info("Analysis disabled (USE_ANALYSIS=False)")
        return None

    if mock_mode is None:
        mock_mode = not config.ANALYSIS_API_KEY
        if mock_mode:
            logger.warning("ANALYSIS_API_KEY not set - running in MOCK mode with neutral scores")

    return AnalysisClient(mock_mode=mock_mode)


if __name__ == "__main__":
    # Test in mock mode
    from .parser import parse_raw_chat

    client = AnalysisClient(mock_mode=True, use_cache=False)
    msgs = parse_raw_chat("me: why didn't you reply\nJohn: busy\nJohn: stop nagging me")
    for msg, result in zip(msgs, client.analyze(msgs)):
        print(f"  {msg.text[:30]}: {result.to_dict()}")
