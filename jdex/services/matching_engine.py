"""
@description 规则匹配引擎
@responsibility 按优先级评估规则、生成带置信度和原因的排序建议，无规则命中时使用启发式兜底
"""

import re
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from loguru import logger

from jdex.schemas.files import FileRecord
from jdex.schemas.matching import (
    Confidence,
    FolderContext,
    RuleCreate,
    RuleSuggestion,
    RuleType,
    RuleUpdate,
    Suggestion,
    BatchMatchResult,
    TargetType,
)
from jdex.services.rule_parser import (
    CompoundCondition,
    DateCondition,
    ExtensionCondition,
    InvalidCondition,
    KeywordCondition,
    ParsedRule,
    PathCondition,
    RegexCondition,
    extract_date_from_filename,
    parse_rule,
)

# 扩展名 -> 常见的文件夹关键词，用于启发式匹配
DEFAULT_EXTENSION_SUGGESTIONS: dict[str, list[str]] = {
    "pdf": ["document", "reference", "manual"],
    "doc": ["document", "word"],
    "docx": ["document", "word"],
    "txt": ["note", "text"],
    "md": ["documentation", "readme"],
    "xls": ["finance", "data", "report"],
    "xlsx": ["finance", "data", "report"],
    "csv": ["data", "export", "import"],
    "jpg": ["photo", "image", "media"],
    "jpeg": ["photo", "image", "media"],
    "png": ["image", "screenshot", "graphic"],
    "gif": ["image", "animation"],
    "js": ["development", "script", "code"],
    "ts": ["development", "typescript", "code"],
    "py": ["development", "python", "script"],
    "zip": ["archive", "backup", "compressed"],
    "rar": ["archive", "compressed"],
    "mp3": ["music", "audio", "podcast"],
    "mp4": ["video", "media", "recording"],
}

SIMILARITY_THRESHOLD = 0.7
_TOKEN_SPLIT = re.compile(r"[-_.\s]+")

# 便捷创建规则时使用的默认优先级
EXTENSION_RULE_PRIORITY = 50
DATE_RULE_PRIORITY = 55
KEYWORD_RULE_PRIORITY = 60
COMPOUND_RULE_PRIORITY = 70


def string_similarity(a: str, b: str) -> float:
    """
    字符串相似度：相同为 1.0，互为子串为 0.8，否则为字符集合的 Jaccard 系数

    这是一个粗略的度量，字符集合相同的字符串（例如 "cat" 和 "act"）得分为 1.0。
    """
    a, b = a.lower(), b.lower()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if a in b or b in a:
        return 0.8

    set_a, set_b = set(a), set(b)
    return len(set_a & set_b) / len(set_a | set_b)


def extract_keywords(filename: str) -> list[str]:
    """文件名去掉扩展名后按 - _ . 空白切分，保留长度大于 2 的小写词"""
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    return [t for t in _TOKEN_SPLIT.split(stem.lower()) if len(t) > 2]


def _folder_keywords(folder: FolderContext) -> list[str]:
    keywords = [folder.name.lower()]
    if folder.keywords:
        keywords.extend(k.strip().lower() for k in folder.keywords.split(",") if k.strip())
    if folder.category_name:
        keywords.append(folder.category_name.lower())
    return [k for k in keywords if k]


@dataclass
class _Snapshot:
    rules: list[ParsedRule]
    folders: list[FolderContext]
    loaded_at: float


class MatchingEngine:
    """规则匹配引擎，由应用组装时创建并注入 store"""

    def __init__(
        self,
        store,
        cache_ttl: float = 30.0,
        regex_timeout: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._cache_ttl = cache_ttl
        self._regex_timeout = regex_timeout
        self._clock = clock
        self._snapshot: Optional[_Snapshot] = None

    # ------------------------------------------------------------------
    # 缓存
    # ------------------------------------------------------------------

    def invalidate_cache(self) -> None:
        self._snapshot = None

    @property
    def cache_age(self) -> Optional[float]:
        if self._snapshot is None:
            return None
        return self._clock() - self._snapshot.loaded_at

    async def refresh_cache(self, force: bool = False) -> None:
        """在缓存失效或 force=True 时重新加载规则和文件夹"""
        if (
            not force
            and self._snapshot is not None
            and self._clock() - self._snapshot.loaded_at < self._cache_ttl
        ):
            return

        rules = await self._store.get_active_rules()
        areas = await self._store.get_areas()
        categories = await self._store.get_categories()
        folders = await self._store.get_folders()

        parsed = [parse_rule(rule) for rule in rules]
        # 稳定排序：同优先级保持原有顺序
        parsed.sort(key=lambda r: -r.priority)

        self._snapshot = _Snapshot(
            rules=parsed,
            folders=self._build_folder_context(areas, categories, folders),
            loaded_at=self._clock(),
        )
        logger.debug(f"匹配缓存已刷新: {len(parsed)} 条规则, {len(folders)} 个文件夹")

    @staticmethod
    def _build_folder_context(areas, categories, folders) -> list[FolderContext]:
        area_by_id = {area.id: area for area in areas}
        category_by_id = {category.id: category for category in categories}

        result = []
        for folder in folders:
            category = category_by_id.get(folder.category_id)
            if category is None:
                continue
            area = area_by_id.get(category.area_id)
            result.append(
                FolderContext(
                    id=folder.id,
                    folder_number=folder.folder_number,
                    name=folder.name,
                    keywords=folder.keywords,
                    storage_path=folder.storage_path,
                    category_id=category.id,
                    category_number=category.number,
                    category_name=category.name,
                    area_id=area.id if area else None,
                    area_name=area.name if area else "",
                    area_range_start=area.range_start if area else None,
                    area_range_end=area.range_end if area else None,
                )
            )
        return result

    async def get_rules(self) -> list[ParsedRule]:
        await self.refresh_cache()
        return list(self._snapshot.rules)

    async def get_folders(self) -> list[FolderContext]:
        await self.refresh_cache()
        return list(self._snapshot.folders)

    # ------------------------------------------------------------------
    # 匹配
    # ------------------------------------------------------------------

    async def match_file(self, file: FileRecord) -> list[Suggestion]:
        """
        为单个文件生成建议

        Returns:
            按置信度降序、规则优先级降序排列的建议列表
        """
        await self.refresh_cache()
        return self._match_with_snapshot(file)

    async def batch_match(self, files: Iterable[FileRecord]) -> list[BatchMatchResult]:
        """批量匹配：只刷新一次缓存，各文件独立匹配"""
        await self.refresh_cache()
        return [
            BatchMatchResult(file=file, suggestions=self._match_with_snapshot(file))
            for file in files
        ]

    def _match_with_snapshot(self, file: FileRecord) -> list[Suggestion]:
        rules = self._snapshot.rules
        folders = self._snapshot.folders

        suggestions: list[Suggestion] = []
        for rule in rules:
            if self.should_exclude(rule, file):
                logger.debug(f"规则 [{rule.name}] 排除文件 {file.filename}")
                continue

            match = self.match_rule(rule, file)
            if match is None:
                continue

            target = self.find_target_folder(rule, folders)
            if target is None:
                logger.debug(f"规则 [{rule.name}] 的目标 {rule.target_id} 不存在，忽略")
                continue

            confidence, reason = match
            suggestions.append(
                Suggestion(
                    target_folder=target,
                    source_rule=rule.summary,
                    confidence=confidence,
                    reason=reason,
                )
            )

        if not suggestions:
            suggestions = self.heuristic_match(file, folders)

        suggestions.sort(
            key=lambda s: (
                s.confidence.rank,
                s.source_rule.priority if s.source_rule else 0,
            ),
            reverse=True,
        )
        return suggestions

    def should_exclude(self, rule: ParsedRule, file: FileRecord) -> bool:
        """排除模式命中时该规则对该文件完全失效"""
        if rule.exclude.is_empty:
            return False

        text = f"{file.filename} {file.path}".lower()
        if any(literal in text for literal in rule.exclude.literals):
            return True
        return any(self._regex_search(pattern, text, rule) for pattern in rule.exclude.patterns)

    def match_rule(
        self, rule: ParsedRule, file: FileRecord
    ) -> Optional[tuple[Confidence, str]]:
        """
        评估单条规则

        Returns:
            (置信度, 原因)，未命中返回 None
        """
        condition = rule.condition
        filename = file.filename.lower()
        path = file.path.lower()
        extension = (file.extension or "").lower().lstrip(".")

        if isinstance(condition, InvalidCondition):
            return None

        if isinstance(condition, ExtensionCondition):
            if extension and extension == condition.extension:
                return Confidence.HIGH, f"扩展名为 .{condition.extension}"
            return None

        if isinstance(condition, KeywordCondition):
            for keyword in condition.keywords:
                if keyword in filename:
                    return Confidence.HIGH, f"文件名包含 \"{keyword}\""
            for keyword in condition.keywords:
                if keyword in path:
                    return Confidence.MEDIUM, f"路径包含 \"{keyword}\""
            return None

        if isinstance(condition, PathCondition):
            if condition.fragment in path:
                return Confidence.MEDIUM, f"路径包含 \"{condition.fragment}\""
            return None

        if isinstance(condition, RegexCondition):
            text = f"{file.filename} {file.path}"
            if self._regex_search(condition.compiled, text, rule):
                return Confidence.LOW, f"匹配正则 {condition.source}"
            return None

        if isinstance(condition, CompoundCondition):
            if any(ext != extension for ext in condition.extensions):
                return None
            if any(kw not in filename and kw not in path for kw in condition.keywords):
                return None
            parts = [f".{ext}" for ext in condition.extensions]
            parts.extend(f"\"{kw}\"" for kw in condition.keywords)
            return Confidence.HIGH, f"同时满足条件: {' + '.join(parts)}"

        if isinstance(condition, DateCondition):
            return self._match_date(condition, file.filename)

        return None

    @staticmethod
    def _match_date(
        condition: DateCondition, filename: str
    ) -> Optional[tuple[Confidence, str]]:
        date = extract_date_from_filename(filename)
        if date is None:
            return None

        for clause in condition.clauses:
            if clause.kind == "year" and clause.value in date.groups:
                confidence = (
                    Confidence.HIGH if date.confidence == Confidence.HIGH else Confidence.MEDIUM
                )
                return confidence, f"文件名包含年份 {clause.value}"
            if clause.kind == "month" and clause.value in date.groups:
                return Confidence.MEDIUM, f"文件名包含月份 {clause.value}"
            if (
                clause.kind == "quarter"
                and date.format == "Quarter"
                and clause.value in date.groups
            ):
                return Confidence.MEDIUM, f"文件名包含季度 Q{clause.value}"
            if clause.kind == "any":
                return Confidence.LOW, f"文件名包含日期 {date.match}"
        return None

    def _regex_search(self, pattern, text: str, rule: ParsedRule) -> bool:
        """执行用户正则，超时或运行错误都视为未命中"""
        try:
            return pattern.search(text, timeout=self._regex_timeout) is not None
        except TimeoutError:
            logger.warning(
                f"规则 [{rule.name}] 的正则执行超过 {self._regex_timeout * 1000:.0f}ms，视为未命中"
            )
            return False
        except (RuntimeError, ValueError) as e:
            logger.warning(f"规则 [{rule.name}] 的正则执行失败: {e}")
            return False

    def find_target_folder(
        self, rule: ParsedRule, folders: list[FolderContext]
    ) -> Optional[FolderContext]:
        """将规则目标解析为具体文件夹，无法解析时返回 None"""
        target_id = str(rule.target_id).strip()

        if rule.target_type == TargetType.FOLDER:
            return next((f for f in folders if f.folder_number == target_id), None)

        if rule.target_type == TargetType.CATEGORY:
            wanted = target_id.zfill(2) if target_id.isdigit() else target_id
            return next(
                (f for f in folders if f"{f.category_number:02d}" == wanted), None
            )

        if rule.target_type == TargetType.AREA:
            match = re.fullmatch(r"(\d{1,2})\s*-\s*(\d{1,2})", target_id)
            if not match:
                return None
            start, end = int(match.group(1)), int(match.group(2))
            return next(
                (f for f in folders if start <= f.category_number <= end), None
            )

        return None

    def heuristic_match(
        self, file: FileRecord, folders: list[FolderContext]
    ) -> list[Suggestion]:
        """无规则命中时的启发式建议：扩展名关键词重合 + 文件名相似度"""
        suggestions: list[Suggestion] = []
        extension = (file.extension or "").lower()

        extension_keywords = DEFAULT_EXTENSION_SUGGESTIONS.get(extension, [])
        if extension_keywords:
            for folder in folders:
                folder_keywords = _folder_keywords(folder)
                score = sum(
                    1
                    for keyword in extension_keywords
                    if any(fk in keyword or keyword in fk for fk in folder_keywords)
                )
                if score > 0:
                    suggestions.append(
                        Suggestion(
                            target_folder=folder,
                            source_rule=None,
                            confidence=Confidence.MEDIUM if score >= 2 else Confidence.LOW,
                            reason=f".{extension} 文件通常归入 {folder.name}",
                        )
                    )

        file_tokens = extract_keywords(file.filename)
        if file_tokens:
            for folder in folders:
                folder_tokens = [
                    t
                    for keyword in _folder_keywords(folder)
                    for t in _TOKEN_SPLIT.split(keyword)
                    if len(t) > 2
                ]
                best = None
                for token in file_tokens:
                    for folder_token in folder_tokens:
                        if string_similarity(token, folder_token) > SIMILARITY_THRESHOLD:
                            best = (token, folder_token)
                            break
                    if best:
                        break
                if best:
                    suggestions.append(
                        Suggestion(
                            target_folder=folder,
                            source_rule=None,
                            confidence=Confidence.LOW,
                            reason=f"文件名中的 \"{best[0]}\" 与 \"{best[1]}\" 相近",
                        )
                    )

        seen: set[int] = set()
        unique = []
        for suggestion in suggestions:
            if suggestion.target_folder.id in seen:
                continue
            seen.add(suggestion.target_folder.id)
            unique.append(suggestion)
        return unique

    # ------------------------------------------------------------------
    # 规则管理
    # ------------------------------------------------------------------

    async def create_rule(self, data: RuleCreate) -> int:
        rule_id = await self._store.create_rule(data)
        self.invalidate_cache()
        return rule_id

    async def update_rule(self, rule_id: int, updates: RuleUpdate):
        rule = await self._store.update_rule(rule_id, updates)
        self.invalidate_cache()
        return rule

    async def delete_rule(self, rule_id: int) -> bool:
        deleted = await self._store.delete_rule(rule_id)
        self.invalidate_cache()
        return deleted

    async def record_match(self, rule_id: int) -> None:
        """用户确认（或自动整理）采用某条规则后累加命中次数"""
        await self._store.increment_rule_match_count(rule_id)

    async def create_extension_rule(
        self, extension: str, folder_number: str, name: Optional[str] = None
    ) -> int:
        extension = extension.lower().lstrip(".")
        return await self.create_rule(
            RuleCreate(
                name=name or f".{extension} 文件",
                rule_type=RuleType.EXTENSION,
                pattern=extension,
                target_type=TargetType.FOLDER,
                target_id=folder_number,
                priority=EXTENSION_RULE_PRIORITY,
            )
        )

    async def create_keyword_rule(
        self, keywords: list[str], folder_number: str, name: Optional[str] = None
    ) -> int:
        return await self.create_rule(
            RuleCreate(
                name=name or f"关键词: {', '.join(keywords[:3])}",
                rule_type=RuleType.KEYWORD,
                pattern=",".join(keywords),
                target_type=TargetType.FOLDER,
                target_id=folder_number,
                priority=KEYWORD_RULE_PRIORITY,
            )
        )

    async def create_compound_rule(
        self,
        extensions: list[str],
        keywords: list[str],
        folder_number: str,
        name: Optional[str] = None,
    ) -> int:
        clauses = [f"ext:{ext.lower().lstrip('.')}" for ext in extensions]
        clauses.extend(f"keyword:{kw}" for kw in keywords)
        return await self.create_rule(
            RuleCreate(
                name=name or f"组合: {', '.join(clauses[:3])}",
                rule_type=RuleType.COMPOUND,
                pattern=",".join(clauses),
                target_type=TargetType.FOLDER,
                target_id=folder_number,
                priority=COMPOUND_RULE_PRIORITY,
            )
        )

    async def create_date_rule(
        self,
        folder_number: str,
        year: Optional[str] = None,
        month: Optional[str] = None,
        quarter: Optional[str] = None,
        name: Optional[str] = None,
    ) -> int:
        clauses = []
        if year:
            clauses.append(f"year:{year}")
        if month:
            clauses.append(f"month:{month}")
        if quarter:
            clauses.append(f"quarter:{quarter}")
        if not clauses:
            clauses.append("pattern:*")
        return await self.create_rule(
            RuleCreate(
                name=name or f"日期: {', '.join(clauses)}",
                rule_type=RuleType.DATE,
                pattern=",".join(clauses),
                target_type=TargetType.FOLDER,
                target_id=folder_number,
                priority=DATE_RULE_PRIORITY,
            )
        )


def suggest_rules_for_folder(files: Iterable[FileRecord]) -> list[RuleSuggestion]:
    """
    根据文件夹中已有文件推导可能的规则

    扩展名出现 3 次以上建议扩展名规则，长度不小于 4 的文件名关键词出现 3 次以上建议关键词规则。
    """
    extension_counts: Counter = Counter()
    keyword_counts: Counter = Counter()

    for file in files:
        if file.extension:
            extension_counts[file.extension.lower()] += 1
        for keyword in set(extract_keywords(file.filename)):
            if len(keyword) >= 4:
                keyword_counts[keyword] += 1

    suggestions = []
    for extension, count in extension_counts.items():
        if count < 3:
            continue
        confidence = (
            Confidence.HIGH if count >= 10 else Confidence.MEDIUM if count >= 5 else Confidence.LOW
        )
        suggestions.append(
            RuleSuggestion(
                rule_type=RuleType.EXTENSION,
                pattern=extension,
                count=count,
                confidence=confidence,
                description=f"{count} 个 .{extension} 文件",
            )
        )

    for keyword, count in keyword_counts.items():
        if count < 3:
            continue
        confidence = (
            Confidence.HIGH if count >= 8 else Confidence.MEDIUM if count >= 5 else Confidence.LOW
        )
        suggestions.append(
            RuleSuggestion(
                rule_type=RuleType.KEYWORD,
                pattern=keyword,
                count=count,
                confidence=confidence,
                description=f"{count} 个文件名包含 \"{keyword}\"",
            )
        )

    suggestions.sort(key=lambda s: s.count, reverse=True)
    return suggestions
