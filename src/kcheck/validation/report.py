from collections.abc import Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TextIO

from loguru import logger

from kcheck.schema.source import SchemaSource
from kcheck.tools.types import Manifest
from kcheck.validation import ObjectRef, Severity, UnknownFieldPolicy, ValidationError, Validator


@dataclass
class ObjectReport:
    """
    The validation result of a single manifest.
    """

    object: ObjectRef
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(error.severity == Severity.ERROR for error in self.errors)


@dataclass
class ValidationReport:
    """
    The validation results of all manifests of a run, in the order the manifests were given.
    """

    objects: list[ObjectReport] = field(default_factory=list)

    @property
    def failed(self) -> list[ObjectReport]:
        return [entry for entry in self.objects if entry.failed]

    @property
    def success(self) -> bool:
        return not self.failed

    def render(self) -> str:
        """
        Render the report as text. Manifests without problems are only counted in the summary.
        """

        lines: list[str] = []
        warnings = 0
        for entry in self.objects:
            if not entry.errors:
                continue
            lines.append(f"{entry.object}:")
            for error in entry.errors:
                lines.append(f"  {error.severity.value:<8}{error}")
                if error.severity == Severity.WARNING:
                    warnings += 1
            lines.append("")

        total = len(self.objects)
        if self.failed:
            summary = f"{len(self.failed)} of {total} object(s) failed validation"
        else:
            summary = f"All {total} object(s) are valid"
        if warnings:
            summary += f" ({warnings} warning(s))"
        lines.append(summary + ".")
        return "\n".join(lines) + "\n"


class ValidationRunner:
    """
    Validates a sequence of manifests and reports the results.

    Args:
        schemas: The schema source to validate against.
        unknown_fields: How to report fields that are not declared in the schema.
        workers: The number of threads to validate manifests with. Manifests are validated one after the other if
            this is `1`.
    """

    def __init__(
        self,
        schemas: SchemaSource,
        unknown_fields: UnknownFieldPolicy = UnknownFieldPolicy.ERROR,
        workers: int = 1,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self._validator = Validator(schemas, unknown_fields)
        self._workers = workers

    def validate(self, manifests: Sequence[Manifest]) -> ValidationReport:
        """
        Validate all manifests. A problem in one manifest does not stop the others from being validated.

        Raises:
            DiscoveryError: If the schema cannot be fetched from the cluster.
        """

        logger.info("Validating {} manifest(s) against '{}'", len(manifests), self._validator.schemas.endpoint)

        if self._workers == 1 or len(manifests) <= 1:
            results = [self._validator.validate(manifest) for manifest in manifests]
        else:
            results = self._validate_concurrently(manifests)

        report = ValidationReport(
            [ObjectReport(ObjectRef.from_manifest(manifest), errors) for manifest, errors in zip(manifests, results)]
        )
        logger.debug("{} of {} manifest(s) have errors", len(report.failed), len(report.objects))
        return report

    def _validate_concurrently(self, manifests: Sequence[Manifest]) -> list[list[ValidationError]]:
        executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="kcheck-validate")
        futures: list[Future[list[ValidationError]]] = []
        try:
            for manifest in manifests:
                futures.append(executor.submit(self._validator.validate, manifest))
            return [future.result() for future in futures]
        finally:
            # Pending validations are cancelled if a result raised or waiting for it was interrupted.
            executor.shutdown(wait=True, cancel_futures=True)

    def run(self, manifests: Sequence[Manifest], out: TextIO) -> bool:
        """
        Validate all manifests, write the report to *out* and return whether all manifests are valid.
        """

        report = self.validate(manifests)
        out.write(report.render())
        out.flush()
        return report.success


def run(
    manifests: Iterable[Manifest],
    schemas: SchemaSource,
    out: TextIO,
    unknown_fields: UnknownFieldPolicy = UnknownFieldPolicy.ERROR,
    workers: int = 1,
) -> bool:
    """
    Validate the *manifests* against the *schemas* and write a report to *out*. See [ValidationRunner.run].
    """

    return ValidationRunner(schemas, unknown_fields, workers).run(list(manifests), out)
