"""
Canonical ID assignment.

Walks the content tree, gives every content unit a stable canonical ID,
and keeps the registry in step with the files:

- files that already carry a canonicalId are never rewritten;
- an ID-less file alone in its slug group becomes a provisional original;
- a slug group with exactly one "rich" file gets that file as original and
  the others as translation placeholders;
- anything ambiguous is reported for a human to decide.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from canon.core import frontmatter
from canon.core.errors import MalformedSource
from canon.core.frontmatter import Document
from canon.core.hashing import content_hash, mint_canonical_id
from canon.core.models import (
    ContentRegistry,
    RegistryEntry,
    TranslationRecord,
    TranslationStatus,
)
from canon.core.registry import RegistryStore
from canon.core.utils import Clock, slugify, utc_now
from canon.i18n.languages import language_from_path, split_collection_slug
from canon.storage.base import ContentStorage

logger = logging.getLogger(__name__)


RICH_MIN_WORDS = 50
RICH_MIN_CHARS = 200


def is_rich(document: Document) -> bool:
    """A body with real content, as opposed to a stub or placeholder."""
    return document.word_count > RICH_MIN_WORDS and len(document.body) > RICH_MIN_CHARS


@dataclass
class ReviewItem:
    """A slug group the assigner refused to classify."""

    collection: str
    slug: str
    paths: list[str]
    reason: str


@dataclass
class ScanReport:
    """What a scan did."""

    registered: list[str] = field(default_factory=list)
    linked: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    files_written: list[str] = field(default_factory=list)
    needs_review: list[ReviewItem] = field(default_factory=list)
    malformed: list[MalformedSource] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.registered or self.linked or self.updated)


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class _File:
    path: str
    raw: str
    document: Document


class CanonicalIdAssigner:
    """
    Scan content and maintain the registry.

    Usage:
        assigner = CanonicalIdAssigner(store, storage, collections, extensions, languages)
        report = assigner.scan()
    """

    def __init__(
        self,
        store: RegistryStore,
        storage: ContentStorage,
        collections: list[str],
        extensions: list[str],
        languages: list[str],
        clock: Clock = utc_now,
    ):
        self.store = store
        self.storage = storage
        self.collections = collections
        self.extensions = extensions
        self.languages = languages
        self.clock = clock

    @property
    def default_language(self) -> str:
        return self.languages[0] if self.languages else "en"

    # =========================================================================
    # Scan
    # =========================================================================

    def scan(self) -> ScanReport:
        """Assign IDs, update the registry, and save it if anything changed."""
        registry = self.store.load()
        report = ScanReport()

        files = self._read_all(report)
        with_id = [f for f in files if f.document.canonical_id]
        without_id = [f for f in files if not f.document.canonical_id]

        # Originals first so translations found in the same scan can link
        originals = [f for f in with_id if not f.document.translation_of]
        translations = [f for f in with_id if f.document.translation_of]

        # A file at its registered path wins over a copy carrying the same ID
        originals.sort(key=lambda f: not self._is_registered_at(registry, f))

        seen: dict[str, str] = {}
        for file in originals:
            self._upkeep_original(registry, file, seen, report)
        for file in translations:
            self._link_translation(registry, file, report)

        self._assign_groups(registry, without_id, report)

        if report.changed:
            self.store.save(registry)

        logger.info(
            f"Scan complete: {len(report.registered)} registered, {len(report.linked)} linked, "
            f"{len(report.updated)} updated, {len(report.needs_review)} need review, "
            f"{len(report.malformed)} malformed"
        )
        return report

    def _read_all(self, report: ScanReport) -> list[_File]:
        files: list[_File] = []
        for path in self.storage.list_documents(self.collections, self.extensions):
            try:
                raw = self.storage.read_text(path)
                document = frontmatter.parse(raw, path)
            except UnicodeDecodeError as e:
                error = MalformedSource(path, f"not valid UTF-8 ({e.reason})")
                logger.warning(str(error))
                report.malformed.append(error)
                continue
            except MalformedSource as e:
                logger.warning(str(e))
                report.malformed.append(e)
                continue
            files.append(_File(path=path, raw=raw, document=document))
        return files

    @staticmethod
    def _is_registered_at(registry: ContentRegistry, file: _File) -> bool:
        entry = registry.get(file.document.canonical_id)
        return entry is not None and entry.original_path == file.path

    def _language_of(self, file: _File) -> str:
        return (
            file.document.language
            or language_from_path(file.path, self.languages)
            or self.default_language
        )

    def _upkeep_original(
        self,
        registry: ContentRegistry,
        file: _File,
        seen: dict[str, str],
        report: ScanReport,
    ) -> None:
        canonical_id = file.document.canonical_id
        if canonical_id in seen:
            collection, slug = split_collection_slug(file.path)
            report.needs_review.append(
                ReviewItem(
                    collection=collection,
                    slug=slugify(slug),
                    paths=[seen[canonical_id], file.path],
                    reason=f"Two originals claim canonical ID '{canonical_id}'",
                )
            )
            return
        seen[canonical_id] = file.path

        body_hash = content_hash(file.document.body)
        entry = registry.get(canonical_id)

        if entry is None:
            registry.register(self._new_entry(canonical_id, file, body_hash))
            report.registered.append(canonical_id)
            logger.info(f"Registered existing original {canonical_id} ({file.path})")
            return

        if entry.original_path != file.path:
            logger.info(f"{canonical_id} moved: {entry.original_path} -> {file.path}")
            entry.original_path = file.path
            report.updated.append(canonical_id)

        if entry.content_hash != body_hash:
            flipped = registry.mark_translations_stale(canonical_id, body_hash, self.clock())
            if canonical_id not in report.updated:
                report.updated.append(canonical_id)
            logger.info(
                f"Original {canonical_id} changed; stale translations: {', '.join(flipped) or 'none'}"
            )

    def _link_translation(self, registry: ContentRegistry, file: _File, report: ScanReport) -> None:
        original_id = file.document.translation_of
        entry = registry.get(original_id)
        if entry is None:
            logger.warning(f"{file.path} is a translation of unknown content '{original_id}'")
            return

        language = self._language_of(file)
        if language == entry.original_language:
            logger.warning(f"{file.path} claims to translate {original_id} into its own language")
            return

        record = entry.translations.get(language)
        if record is not None:
            if record.path != file.path:
                record.path = file.path
                report.updated.append(f"{original_id}:{language}")
            return

        status, source_hash = self._history_status(file.document, entry)
        registry.record_translation(
            original_id,
            language,
            TranslationRecord(
                path=file.path,
                status=status,
                last_translated=self.clock(),
                translation_hash=content_hash(file.document.body),
                source_hash=source_hash,
            ),
        )
        report.linked.append(f"{original_id}:{language}")
        logger.info(f"Linked {language} translation of {original_id} ({file.path}, {status.value})")

    @staticmethod
    def _history_status(
        document: Document,
        entry: RegistryEntry,
    ) -> tuple[TranslationStatus, str | None]:
        """Status of an imported translation, judged by its newest history entry."""
        history = document.frontmatter.get("translationHistory")
        if not isinstance(history, list) or not history or not isinstance(history[0], dict):
            return TranslationStatus.CURRENT, None

        source_sha = str(history[0].get("sourceSha") or "")
        if not source_sha:
            return TranslationStatus.CURRENT, None
        if entry.content_hash.startswith(source_sha):
            return TranslationStatus.CURRENT, entry.content_hash
        return TranslationStatus.STALE, None

    def _new_entry(self, canonical_id: str, file: _File, body_hash: str) -> RegistryEntry:
        _, stem = split_collection_slug(file.path)
        return RegistryEntry(
            canonical_id=canonical_id,
            original_path=file.path,
            original_language=self._language_of(file),
            title=file.document.title or stem,
            content_hash=body_hash,
            last_modified=self.clock(),
        )

    # =========================================================================
    # Slug groups of ID-less files
    # =========================================================================

    def _assign_groups(self, registry: ContentRegistry, files: list[_File], report: ScanReport) -> None:
        groups: dict[tuple[str, str], list[_File]] = defaultdict(list)
        for file in files:
            collection, stem = split_collection_slug(file.path)
            groups[(collection, slugify(stem))].append(file)

        registered: dict[tuple[str, str], str] = {}
        for entry in registry.iter_entries():
            collection, stem = split_collection_slug(entry.original_path)
            registered[(collection, slugify(stem))] = entry.canonical_id

        for (collection, slug), group in sorted(groups.items()):
            paths = [f.path for f in group]

            if (collection, slug) in registered:
                report.needs_review.append(
                    ReviewItem(
                        collection,
                        slug,
                        paths,
                        f"Slug collides with registered original '{registered[(collection, slug)]}'",
                    )
                )
                continue

            if len(group) == 1:
                self._assign_original(registry, group[0], report)
                continue

            rich = [f for f in group if is_rich(f.document)]
            if len(rich) != 1:
                reason = (
                    "Multiple rich files; content may have diverged"
                    if rich
                    else "No file has enough content to be the original"
                )
                report.needs_review.append(ReviewItem(collection, slug, paths, reason))
                logger.warning(f"{collection}/{slug} needs review: {reason}")
                continue

            original = rich[0]
            placeholders = [f for f in group if f is not original]
            languages = [self._language_of(f) for f in group]
            if len(set(languages)) != len(languages):
                report.needs_review.append(
                    ReviewItem(collection, slug, paths, "Several files share one language")
                )
                continue

            canonical_id = self._assign_original(registry, original, report)
            for placeholder in placeholders:
                self._assign_placeholder(registry, canonical_id, original, placeholder, report)

    def _assign_original(self, registry: ContentRegistry, file: _File, report: ScanReport) -> str:
        canonical_id = mint_canonical_id(file.path, file.raw, self.clock())
        language = self._language_of(file)

        metadata = dict(file.document.frontmatter)
        metadata["canonicalId"] = canonical_id
        metadata.setdefault("originalLanguage", language)
        self._rewrite(file, metadata, report)

        registry.register(self._new_entry(canonical_id, file, content_hash(file.document.body)))
        report.registered.append(canonical_id)
        logger.info(f"Assigned {canonical_id} to {file.path} ({language})")
        return canonical_id

    def _assign_placeholder(
        self,
        registry: ContentRegistry,
        canonical_id: str,
        original: _File,
        file: _File,
        report: ScanReport,
    ) -> None:
        language = self._language_of(file)

        metadata = dict(file.document.frontmatter)
        metadata["canonicalId"] = canonical_id
        metadata["translationOf"] = canonical_id
        metadata["sourceLanguage"] = self._language_of(original)
        metadata.setdefault("language", language)
        self._rewrite(file, metadata, report)

        registry.record_translation(
            canonical_id,
            language,
            TranslationRecord(
                path=file.path,
                status=TranslationStatus.MISSING,
                last_translated=self.clock(),
                translation_hash=content_hash(file.document.body),
            ),
        )
        report.linked.append(f"{canonical_id}:{language}")
        logger.info(f"Marked {file.path} as {language} placeholder of {canonical_id}")

    def _rewrite(self, file: _File, metadata: dict, report: ScanReport) -> None:
        self.storage.write_text(file.path, frontmatter.dump(metadata, file.document.body))
        report.files_written.append(file.path)

    # =========================================================================
    # Validate
    # =========================================================================

    def validate(self) -> ValidationResult:
        """Check that the registry and the files on disk agree."""
        registry = self.store.load()
        errors: list[str] = []
        warnings: list[str] = []

        for entry in registry.iter_entries():
            if not self.storage.exists(entry.original_path):
                errors.append(f"{entry.canonical_id}: original file missing ({entry.original_path})")
            else:
                try:
                    document = frontmatter.parse(
                        self.storage.read_text(entry.original_path), entry.original_path
                    )
                except (MalformedSource, UnicodeDecodeError) as e:
                    errors.append(f"{entry.canonical_id}: {e}")
                else:
                    if document.canonical_id != entry.canonical_id:
                        errors.append(
                            f"{entry.canonical_id}: {entry.original_path} carries "
                            f"canonicalId '{document.canonical_id}'"
                        )

            for language, record in sorted(entry.translations.items()):
                if language not in self.languages:
                    warnings.append(f"{entry.canonical_id}: unsupported language '{language}'")
                if record.status == TranslationStatus.MISSING:
                    continue
                if not self.storage.exists(record.path):
                    warnings.append(
                        f"{entry.canonical_id}: {language} translation file missing ({record.path})"
                    )
                    continue
                try:
                    document = frontmatter.parse(self.storage.read_text(record.path), record.path)
                except (MalformedSource, UnicodeDecodeError) as e:
                    warnings.append(f"{entry.canonical_id}: {e}")
                    continue
                for problem in frontmatter.validate_translation_frontmatter(
                    document.frontmatter, self.languages
                ):
                    warnings.append(f"{record.path}: {problem}")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
