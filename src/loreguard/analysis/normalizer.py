"""结果归一化：把松散、可能残缺的模型回复转换为严格的 AnalysisResult。

流程：
1. 去掉代码块包裹后解析 JSON；失败则进入兜底
2. prediction -> consistency_label（仅 "consistent" 为 1）
3. 逐条论断：未知状态一律 unverified；置信度缺省时取第一条证据的相关度，否则取默认值
4. 五个固定约束维度逐一查找，缺失的补为 uncertain；关联论断缺省取前 N 个论断 id
5. 兜底：label=0、confidence=0.5、无论断、五个维度全部 uncertain、explanation 为原文

任何输入都不会让 normalize() 抛出异常。
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from loreguard.analysis.utils import extract_json
from loreguard.config.settings import AnalysisConfig
from loreguard.errors import MalformedResponseError
from loreguard.models.analysis import (
    AnalysisResult,
    Claim,
    ClaimStatus,
    ConstraintAnalysis,
    ConstraintStatus,
    ConstraintType,
    Evidence,
)
from loreguard.models.job import Track, generate_id

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
FALLBACK_RATIONALE = "Analysis completed but response parsing failed"
FALLBACK_CONSTRAINT_NOTE = "Could not parse structured analysis"
DEFAULT_EVIDENCE_RELEVANCE = 0.5


def _missing_constraint_note(constraint_type: ConstraintType) -> str:
    return f"No {constraint_type.value} analysis provided by the model"


def _clamp_unit(value: Any, default: float) -> float:
    """转换为 [0, 1] 内的浮点数，无法转换时返回 default。"""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(1.0, max(0.0, number))


def _first_relevance(raw_evidence: Any) -> float | None:
    """原始证据列表第一条的 relevanceScore；缺失或无法解析时返回 None。"""
    if not isinstance(raw_evidence, list) or not raw_evidence:
        return None
    first = raw_evidence[0]
    if not isinstance(first, dict):
        return None
    score = first.get("relevanceScore", first.get("relevance_score"))
    if score is None:
        return None
    clamped = _clamp_unit(score, -1.0)
    return None if clamped < 0 else clamped


def _as_text(value: Any, strip: bool = True) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip() if strip else value
    return str(value)


def _parse_claim_status(value: Any) -> ClaimStatus:
    try:
        return ClaimStatus(_as_text(value).lower())
    except ValueError:
        return ClaimStatus.UNVERIFIED


def _parse_constraint_status(value: Any) -> ConstraintStatus:
    try:
        return ConstraintStatus(_as_text(value).lower())
    except ValueError:
        return ConstraintStatus.UNCERTAIN


class ResultNormalizer:
    """模型回复 -> AnalysisResult。"""

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config or AnalysisConfig()

    def normalize(
        self,
        raw: str | dict[str, Any] | None,
        story_id: str,
        track: Track | str = Track.A,
        processing_time: int = 0,
    ) -> AnalysisResult:
        """始终返回合法的 AnalysisResult。"""
        track = Track(track)
        try:
            payload = self.parse_payload(raw)
        except MalformedResponseError as e:
            logger.warning("模型回复无法解析，使用兜底结果: %s", e)
            return self.fallback(raw, story_id, track, processing_time)
        try:
            return self.from_payload(payload, story_id, track, processing_time)
        except (TypeError, ValueError, RecursionError) as e:
            logger.warning("模型回复结构异常，使用兜底结果: %s", e)
            return self.fallback(raw, story_id, track, processing_time)

    def parse_payload(self, raw: str | dict[str, Any] | None) -> dict[str, Any]:
        """解析原始回复为字典。

        Raises:
            MalformedResponseError: 无法得到 JSON 对象时。
        """
        if isinstance(raw, dict):
            return raw
        if raw is None or not str(raw).strip():
            raise MalformedResponseError("empty response")
        try:
            data = extract_json(str(raw))
        except (json.JSONDecodeError, ValueError) as e:
            raise MalformedResponseError(f"invalid JSON: {e}") from e
        except RecursionError as e:
            raise MalformedResponseError("JSON nested too deeply") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"expected JSON object, got {type(data).__name__}")
        return data

    # ------------------------------------------------------------------
    # 正常路径
    # ------------------------------------------------------------------

    def from_payload(
        self,
        payload: dict[str, Any],
        story_id: str,
        track: Track,
        processing_time: int = 0,
    ) -> AnalysisResult:
        prediction = _as_text(payload.get("prediction")).lower()
        claims = self._normalize_claims(payload.get("claims"))
        constraints = self._normalize_constraints(payload.get("constraints"), claims)

        return AnalysisResult(
            id=generate_id(),
            story_id=story_id,
            consistency_label=1 if prediction == "consistent" else 0,
            overall_confidence=_clamp_unit(payload.get("confidence"), FALLBACK_CONFIDENCE),
            rationale=_as_text(payload.get("rationale")),
            explanation=_as_text(payload.get("explanation"), strip=False),
            claims=claims,
            constraint_analysis=constraints,
            processing_time=max(0, int(processing_time)),
            timestamp=datetime.now(),
            track=track,
        )

    def _normalize_claims(self, raw_claims: Any) -> list[Claim]:
        if not isinstance(raw_claims, list):
            return []
        claims: list[Claim] = []
        seen_ids: set[str] = set()
        for index, entry in enumerate(raw_claims):
            if isinstance(entry, str):
                entry = {"text": entry}
            if not isinstance(entry, dict):
                continue
            claim_id = _as_text(entry.get("id")) or f"claim_{index + 1}"
            if claim_id in seen_ids:
                claim_id = f"{claim_id}_{index + 1}"
            seen_ids.add(claim_id)

            evidence = self._normalize_evidence(entry.get("evidence"), claim_id)
            claims.append(
                Claim(
                    id=claim_id,
                    text=_as_text(entry.get("text") or entry.get("claim"), strip=False),
                    status=_parse_claim_status(entry.get("status")),
                    confidence=self._claim_confidence(entry),
                    evidence=evidence,
                )
            )
        return claims

    def _claim_confidence(self, entry: dict[str, Any]) -> float:
        """显式置信度 > 第一条证据给出的相关度 > 默认值。

        只看原始回复中的第一条证据（即使其引文为空被丢弃），
        且该条必须真的带有可解析的 relevanceScore。
        """
        default = self.config.default_claim_confidence
        if entry.get("confidence") is not None:
            return _clamp_unit(entry.get("confidence"), default)
        if self.config.claim_confidence_from_evidence:
            score = _first_relevance(entry.get("evidence"))
            if score is not None:
                return score
        return default

    def _normalize_evidence(self, raw_evidence: Any, claim_id: str) -> list[Evidence]:
        if not isinstance(raw_evidence, list):
            return []
        items: list[Evidence] = []
        for index, entry in enumerate(raw_evidence):
            if isinstance(entry, str):
                entry = {"excerpt": entry}
            if not isinstance(entry, dict):
                continue
            quote = _as_text(entry.get("excerpt") or entry.get("quote"), strip=False)
            if not quote.strip():
                continue
            note = _as_text(entry.get("analysisNote") or entry.get("analysis_note"))
            items.append(
                Evidence(
                    id=_as_text(entry.get("id")) or f"{claim_id}_evidence_{index + 1}",
                    quote=quote,
                    chapter_ref=_as_text(
                        entry.get("chapterRef") or entry.get("chapter_ref") or entry.get("location")
                    ),
                    relevance_score=_clamp_unit(
                        entry.get("relevanceScore", entry.get("relevance_score")),
                        DEFAULT_EVIDENCE_RELEVANCE,
                    ),
                    analysis_note=note or None,
                )
            )
        return items

    def _normalize_constraints(
        self, raw_constraints: Any, claims: list[Claim]
    ) -> list[ConstraintAnalysis]:
        by_type = self._index_constraints(raw_constraints)
        claim_ids = [c.id for c in claims]
        fallback_related = claim_ids[: self.config.related_claims_fallback]

        results: list[ConstraintAnalysis] = []
        for constraint_type in ConstraintType:
            entry = by_type.get(constraint_type.value)
            if entry is None:
                results.append(
                    ConstraintAnalysis(
                        id=generate_id(),
                        constraint_type=constraint_type,
                        description=_missing_constraint_note(constraint_type),
                        status=ConstraintStatus.UNCERTAIN,
                        related_claims=list(fallback_related),
                    )
                )
                continue

            if isinstance(entry, dict):
                status = _parse_constraint_status(entry.get("status"))
                description = _as_text(
                    entry.get("note") or entry.get("description")
                ) or _missing_constraint_note(constraint_type)
                related = entry.get("relatedClaims", entry.get("related_claims"))
            else:
                # 只给了状态字符串
                status = _parse_constraint_status(entry)
                description = _missing_constraint_note(constraint_type)
                related = None

            if isinstance(related, list):
                related_ids = [str(r) for r in related if str(r) in claim_ids]
            else:
                related_ids = list(fallback_related)

            results.append(
                ConstraintAnalysis(
                    id=generate_id(),
                    constraint_type=constraint_type,
                    description=description,
                    status=status,
                    related_claims=related_ids,
                )
            )
        return results

    @staticmethod
    def _index_constraints(raw_constraints: Any) -> dict[str, Any]:
        """约束既可能是 {type: {...}} 映射，也可能是带 type 字段的列表。"""
        if isinstance(raw_constraints, dict):
            return {str(k).strip().lower(): v for k, v in raw_constraints.items()}
        indexed: dict[str, Any] = {}
        if isinstance(raw_constraints, list):
            for entry in raw_constraints:
                if not isinstance(entry, dict):
                    continue
                key = _as_text(
                    entry.get("constraintType") or entry.get("constraint_type") or entry.get("type")
                ).lower()
                if key and key not in indexed:
                    indexed[key] = entry
        return indexed

    # ------------------------------------------------------------------
    # 兜底路径
    # ------------------------------------------------------------------

    def fallback(
        self,
        raw: Any,
        story_id: str,
        track: Track | str = Track.A,
        processing_time: int = 0,
    ) -> AnalysisResult:
        """解析彻底失败时的低置信度结果，explanation 保留原始回复文本。"""
        return AnalysisResult(
            id=generate_id(),
            story_id=story_id,
            consistency_label=0,
            overall_confidence=FALLBACK_CONFIDENCE,
            rationale=FALLBACK_RATIONALE,
            explanation=raw if isinstance(raw, str) else "",
            claims=[],
            constraint_analysis=[
                ConstraintAnalysis(
                    id=generate_id(),
                    constraint_type=constraint_type,
                    description=FALLBACK_CONSTRAINT_NOTE,
                    status=ConstraintStatus.UNCERTAIN,
                    related_claims=[],
                )
                for constraint_type in ConstraintType
            ],
            processing_time=max(0, int(processing_time)),
            timestamp=datetime.now(),
            track=Track(track),
        )

    @staticmethod
    def is_fallback(result: AnalysisResult) -> bool:
        return result.rationale == FALLBACK_RATIONALE and not result.claims
