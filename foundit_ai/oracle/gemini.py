"""
Gemini-backed oracle
--------------------
Scores report pairs, writes one easy verification question per found item and
judges owner answers leniently. Every failure degrades to a safe default.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Dict, Optional

import google.generativeai as genai

from ..common.schemas import Report, VerificationPair
from .base import FALLBACK_PAIR

logger = logging.getLogger(__name__)


def _describe(label: str, report: Report) -> str:
    return (
        f"{label} ({report.type.value}):\n"
        f"Category: {report.category}\n"
        f"Item: {report.item_name}\n"
        f"Description: {report.description}\n"
        f"Location: {report.location}\n"
        f"Time: {report.occurred_at}"
    )


class GeminiOracle:

    def __init__(self, api_key: Optional[str] = None, model_name: str = "gemini-2.0-flash",
                 timeout: float = 30.0, campus_name: str = "Shirpur", model=None):
        if api_key:
            genai.configure(api_key=api_key)
        self._model = model or genai.GenerativeModel(model_name)
        self._timeout = timeout
        self._campus = campus_name

    def _ask_json(self, prompt: str) -> Dict:
        response = self._model.generate_content(
            prompt,
            generation_config={"response_mime_type": "application/json"},
            request_options={"timeout": self._timeout},
        ).text.strip()

        # Extract JSON from response
        json_match = re.search(r'\{.*\}', response, re.DOTALL)
        if not json_match:
            raise ValueError("No JSON found in AI response")
        return json.loads(json_match.group())

    def score(self, report_a: Report, report_b: Report) -> float:
        prompt = f"""
        Act as a precise Lost & Found matching engine for the {self._campus} campus.
        Analyze the following two reports and return a similarity score from 0 to 100.

        MATCHING RULES:
        1. NORMALIZE: Ignore case, minor typos, and common stopwords.
        2. CATEGORY MATCH: If categories are different (e.g., Electronics vs Clothing), score should be low unless descriptions overlap significantly.
        3. LOCATION WEIGHT: Boost score if locations (e.g., 'Library', 'Block A') are identical or logically close within the campus layout.
        4. TIME WEIGHT: High similarity requires reported times to be within 48 hours.

        {_describe("REPORT 1", report_a)}

        {_describe("REPORT 2", report_b)}

        Respond only with JSON: {{"score": <number 0-100>}}
        """
        try:
            data = self._ask_json(prompt)
            return max(0.0, min(100.0, float(data.get("score", 0))))
        except Exception as e:
            logger.warning(f"Similarity score error: {e}")
            return 0.0

    def generate_verification_question(self, found: Report) -> VerificationPair:
        prompt = f"""
        Generate ONE EASY verification question for the owner of this found item.

        QUESTION DESIGN RULES:
        1. Focus on ONE concrete, obvious attribute: Color (of a part), Brand/Logo, a specific Sticker/Mark, or a single Word/Phrase written on it.
        2. The question must be SHORT, DIRECT, and plain language (e.g., "What color is the strap?", "What brand is on the front?").
        3. Avoid abstract, vague, or memory-heavy questions.
        4. Avoid compound or multi-part questions.

        ITEM: {found.item_name}
        DESCRIPTION: {found.description}

        Respond only with JSON: {{"question": "...", "answer": "correct short answer (1-3 words)"}}
        """
        try:
            data = self._ask_json(prompt)
            question = str(data.get("question", "")).strip()
            answer = str(data.get("answer", "")).strip()
            if not question or not answer:
                raise ValueError("Incomplete verification pair")
            return VerificationPair(question=question, answer=answer)
        except Exception as e:
            logger.warning(f"Verification generation error: {e}")
            return FALLBACK_PAIR

    def validate_answer(self, user_answer: str, expected_answer: str) -> bool:
        prompt = f"""
        Does the User Answer semantically match the Expected Answer?

        VALIDATION RULES:
        1. Be lenient: Accept case-insensitive matches, minor spelling variations, and synonyms.
        2. Accept partial matches if the key detail (e.g., "Red" vs "It is dark red") is present.

        Expected: {expected_answer}
        User Answer: {user_answer}

        Respond only with JSON: {{"isMatch": true or false}}
        """
        try:
            return self._ask_json(prompt).get("isMatch") is True
        except Exception as e:
            logger.warning(f"Answer validation error: {e}")
            return False
