"""
LLM 응답 파싱 유틸리티

Gemini 가 반환하는 마크다운 래핑 JSON 을 파싱합니다.
"""
import json
import re
from typing import Any, Dict, Iterable

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_llm_json(text: str) -> Any:
    """LLM 응답에서 코드블록을 제거한 뒤 JSON 파싱.

    지원 패턴:
      - ```json ... ```
      - ``` ... ```
      - 앞뒤 설명 문장이 붙은 JSON 객체
      - 순수 JSON
    """
    if text is None:
        raise ValueError("Empty LLM response")
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)
    elif text.startswith("```"):
        # 닫는 ``` 없는 경우
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(text[start:end + 1])


def require_fields(data: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """필수 문자열 필드가 비어 있지 않은지 확인. 누락 시 ValueError."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected JSON object, got {type(data).__name__}")
    missing = [f for f in fields if not str(data.get(f) or "").strip()]
    if missing:
        raise ValueError(f"Missing fields in LLM response: {', '.join(missing)}")
    return data
