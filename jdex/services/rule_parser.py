"""
@description 规则模式解析
@responsibility 将持久化的规则模式字符串一次性解析为强类型的条件对象，并提供文件名日期提取
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Union

import regex
from loguru import logger

from jdex.schemas.matching import Confidence, RuleSummary, RuleType, TargetType


class PatternError(ValueError):
    """规则模式不合法"""


# ---------------------------------------------------------------------------
# 条件类型（按 rule_type 区分）
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtensionCondition:
    extension: str


@dataclass(frozen=True)
class KeywordCondition:
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class PathCondition:
    fragment: str


@dataclass(frozen=True)
class RegexCondition:
    source: str
    compiled: regex.Pattern


@dataclass(frozen=True)
class CompoundCondition:
    extensions: tuple[str, ...]
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class DateClause:
    kind: str  # year / month / quarter / any
    value: str = ""


@dataclass(frozen=True)
class DateCondition:
    clauses: tuple[DateClause, ...]


@dataclass(frozen=True)
class InvalidCondition:
    """无法解析的模式，永远不匹配"""

    reason: str


RuleCondition = Union[
    ExtensionCondition,
    KeywordCondition,
    PathCondition,
    RegexCondition,
    CompoundCondition,
    DateCondition,
    InvalidCondition,
]


@dataclass(frozen=True)
class ExcludeMatcher:
    literals: tuple[str, ...] = ()
    patterns: tuple[regex.Pattern, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.literals and not self.patterns


@dataclass(frozen=True)
class ParsedRule:
    summary: RuleSummary
    condition: RuleCondition
    exclude: ExcludeMatcher = field(default_factory=ExcludeMatcher)

    @property
    def id(self) -> int:
        return self.summary.id

    @property
    def name(self) -> str:
        return self.summary.name

    @property
    def priority(self) -> int:
        return self.summary.priority

    @property
    def target_type(self) -> TargetType:
        return self.summary.target_type

    @property
    def target_id(self) -> str:
        return self.summary.target_id


# ---------------------------------------------------------------------------
# 模式解析
# ---------------------------------------------------------------------------


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def compile_user_regex(source: str) -> regex.Pattern:
    """编译用户提供的正则（大小写不敏感）"""
    try:
        return regex.compile(source, regex.IGNORECASE)
    except (regex.error, TypeError, ValueError) as e:
        raise PatternError(f"正则表达式无效: {e}") from e


def _parse_date_clause(clause: str) -> DateClause:
    kind, _, value = clause.partition(":")
    kind = kind.strip().lower()
    value = value.strip()

    if kind == "year":
        if not re.fullmatch(r"\d{4}", value):
            raise PatternError(f"年份格式应为 YYYY: {clause}")
        return DateClause("year", value)
    if kind == "month":
        if not value.isdigit() or not 1 <= int(value) <= 12:
            raise PatternError(f"月份应为 1-12: {clause}")
        return DateClause("month", f"{int(value):02d}")
    if kind == "quarter":
        quarter = value.upper().lstrip("Q")
        if quarter not in {"1", "2", "3", "4"}:
            raise PatternError(f"季度应为 Q1-Q4: {clause}")
        return DateClause("quarter", quarter)
    if kind == "pattern":
        if value not in ("", "*"):
            raise PatternError(f"日期模式只支持 pattern:*: {clause}")
        return DateClause("any", "*")
    raise PatternError(f"未知的日期条件: {clause}")


def parse_pattern(rule_type: Union[RuleType, str], pattern: str) -> RuleCondition:
    """
    按规则类型解析模式字符串

    Args:
        rule_type: 规则类型
        pattern: 模式字符串

    Returns:
        对应的条件对象

    Raises:
        PatternError: 模式为空或与规则类型不符
    """
    try:
        rule_type = RuleType(rule_type)
    except ValueError as e:
        raise PatternError(f"未知的规则类型: {rule_type}") from e

    if not pattern or not pattern.strip():
        raise PatternError("规则模式不能为空")
    pattern = pattern.strip()

    if rule_type == RuleType.EXTENSION:
        extension = pattern.lower().lstrip(".")
        if not extension or re.search(r"[\s/\\,]", extension):
            raise PatternError(f"扩展名无效: {pattern}")
        return ExtensionCondition(extension)

    if rule_type == RuleType.KEYWORD:
        keywords = tuple(k.lower() for k in _split_list(pattern))
        if not keywords:
            raise PatternError("至少需要一个关键词")
        return KeywordCondition(keywords)

    if rule_type == RuleType.PATH:
        return PathCondition(pattern.lower())

    if rule_type == RuleType.REGEX:
        return RegexCondition(pattern, compile_user_regex(pattern))

    if rule_type == RuleType.COMPOUND:
        extensions, keywords = [], []
        for clause in _split_list(pattern):
            kind, _, value = clause.partition(":")
            kind, value = kind.strip().lower(), value.strip().lower()
            if not value:
                raise PatternError(f"组合条件缺少取值: {clause}")
            if kind == "ext":
                extensions.append(value.lstrip("."))
            elif kind == "keyword":
                keywords.append(value)
            else:
                raise PatternError(f"未知的组合条件: {clause}")
        if not extensions and not keywords:
            raise PatternError("组合规则至少需要一个条件")
        return CompoundCondition(tuple(extensions), tuple(keywords))

    # RuleType.DATE
    clauses = tuple(_parse_date_clause(clause) for clause in _split_list(pattern))
    if not clauses:
        raise PatternError("日期规则至少需要一个条件")
    return DateCondition(clauses)


def parse_exclude_pattern(value: Optional[str]) -> ExcludeMatcher:
    """
    解析排除模式：逗号分隔的字面量，/.../ 包裹的项按正则处理

    无法编译的排除正则会被忽略并记录警告。
    """
    if not value or not value.strip():
        return ExcludeMatcher()

    literals, patterns = [], []
    for item in _split_list(value.lower()):
        if len(item) > 2 and item.startswith("/") and item.endswith("/"):
            try:
                patterns.append(compile_user_regex(item[1:-1]))
            except PatternError as e:
                logger.warning(f"忽略无效的排除正则 {item}: {e}")
        else:
            literals.append(item)
    return ExcludeMatcher(tuple(literals), tuple(patterns))


def parse_rule(rule) -> ParsedRule:
    """
    将持久化的规则对象解析为 ParsedRule

    模式无效时返回 InvalidCondition（该规则不再参与匹配），不会抛出异常。
    """
    summary = RuleSummary(
        id=rule.id,
        name=rule.name,
        rule_type=rule.rule_type,
        pattern=rule.pattern or "",
        target_type=rule.target_type,
        target_id=str(rule.target_id),
        priority=rule.priority if rule.priority is not None else 50,
        match_count=rule.match_count or 0,
    )
    try:
        condition = parse_pattern(rule.rule_type, rule.pattern)
    except PatternError as e:
        logger.warning(f"规则 [{rule.name}] (id={rule.id}) 模式无效，将被忽略: {e}")
        condition = InvalidCondition(str(e))

    return ParsedRule(
        summary=summary,
        condition=condition,
        exclude=parse_exclude_pattern(rule.exclude_pattern),
    )


# ---------------------------------------------------------------------------
# 日期提取
# ---------------------------------------------------------------------------

MONTH_NAMES = {
    "jan": "01",
    "feb": "02",
    "mar": "03",
    "apr": "04",
    "may": "05",
    "jun": "06",
    "jul": "07",
    "aug": "08",
    "sep": "09",
    "oct": "10",
    "nov": "11",
    "dec": "12",
}


@dataclass(frozen=True)
class DateMatch:
    match: str
    format: str
    confidence: Confidence
    groups: tuple[str, ...]


# 按具体程度从高到低排列，第一个命中的生效
DATE_PATTERNS = [
    (re.compile(r"(\d{4})-(\d{2})-(\d{2})"), "YYYY-MM-DD", Confidence.HIGH),
    (re.compile(r"(\d{2})[-/](\d{2})[-/](\d{4})"), "MM-DD-YYYY", Confidence.MEDIUM),
    (re.compile(r"\b(20\d{2})(\d{2})(\d{2})\b"), "YYYYMMDD", Confidence.MEDIUM),
    (re.compile(r"(20\d{2})[-_](\d{2})"), "YYYY-MM", Confidence.MEDIUM),
    (
        re.compile(
            r"(?<![a-z])(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
            r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
            r"[-_\s]?(20\d{2})",
            re.IGNORECASE,
        ),
        "Month-YYYY",
        Confidence.MEDIUM,
    ),
    (
        re.compile(r"(20\d{2})[-_]?Q([1-4])|Q([1-4])[-_]?(20\d{2})", re.IGNORECASE),
        "Quarter",
        Confidence.MEDIUM,
    ),
]


def extract_date_from_filename(filename: str) -> Optional[DateMatch]:
    """
    从文件名中提取日期片段

    Returns:
        第一个命中的日期格式；月份名称会被转换为两位数字
    """
    for pattern, fmt, confidence in DATE_PATTERNS:
        match = pattern.search(filename)
        if not match:
            continue
        groups = [g for g in match.groups() if g is not None]
        if fmt == "Month-YYYY":
            groups[0] = MONTH_NAMES[groups[0][:3].lower()]
        return DateMatch(
            match=match.group(0),
            format=fmt,
            confidence=confidence,
            groups=tuple(groups),
        )
    return None
