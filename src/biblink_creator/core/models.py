from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .identifiers import IdentifierKind


class FormatResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool = False
    value: str = ""


INVALID = FormatResult()


class ExtractedRecord(BaseModel):
    """One row prepared for the destination; equal only when all four fields match."""

    model_config = ConfigDict(frozen=True)

    subject: str
    identifier: str
    title: str
    year: str = ""


class ExtractionOutcome(BaseModel):
    identifiers: set[str] = Field(default_factory=set)
    invalid_count: int = 0


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = ""
    password: str = ""


class RepositoryEndpoint(BaseModel):
    """Connection details of one repository.

    Blank fields are accepted here; the extraction pipeline reports them as
    missing configuration before any network call is made.
    """

    model_config = ConfigDict(frozen=True)

    server_url: str = ""
    repository_id: str = ""
    repository_name: str = ""
    schema_url: str = ""
    credentials: Credentials | None = None


class ReplacementMode(str, Enum):
    ANYWHERE = "anywhere"
    BEFORE_END = "before_end"
    AFTER_INDEX = "after_index"
    BEFORE_INDEX = "before_index"
    REGEX = "regex"


class StringReplacementRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    search: str = ""
    replacement: str = ""
    mode: ReplacementMode = ReplacementMode.ANYWHERE
    index: int = 0


RuleList = list[StringReplacementRule] | None


class FormatRules(BaseModel):
    """Per-source replacement rules, applied before built-in normalization."""

    model_config = ConfigDict(frozen=True)

    arxiv_id: RuleList = None
    doi: RuleList = None
    isbn: RuleList = None
    issn: RuleList = None
    journal_title: RuleList = None
    lccn: RuleList = None
    oclc: RuleList = None
    pmid: RuleList = None
    title: RuleList = None
    year: RuleList = None

    def for_kind(self, kind: IdentifierKind) -> RuleList:
        return {
            IdentifierKind.ARXIV_ID: self.arxiv_id,
            IdentifierKind.DOI: self.doi,
            IdentifierKind.ISBN: self.isbn,
            IdentifierKind.ISSN: self.issn,
            IdentifierKind.JOURNAL_TITLE: self.journal_title,
            IdentifierKind.LCCN: self.lccn,
            IdentifierKind.OCLC: self.oclc,
            IdentifierKind.PMID: self.pmid,
        }[kind]


class SimilarityMeasure(str, Enum):
    COSINE = "cosine"
    DICE = "dice"
    JACCARD = "jaccard"
    OVERLAP = "overlap"


class ShingleUnit(str, Enum):
    WORD = "word"
    CHAR = "char"


class SimilaritySelector(BaseModel):
    model_config = ConfigDict(frozen=True)

    measure: SimilarityMeasure = SimilarityMeasure.JACCARD
    unit: ShingleUnit = ShingleUnit.WORD
    size: int = 1

    @field_validator("size")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return v if v > 0 else 1


class ToleranceThresholds(BaseModel):
    """Cutoffs consumed by link acceptance.

    ``title_threshold`` applies to category B identifiers; ``title_threshold_a``
    and ``title_threshold_b`` apply to category A identifiers for the titles of
    source A and source B respectively.
    """

    model_config = ConfigDict(frozen=True)

    title_threshold: float = Field(default=1.0, ge=0.0, le=1.0)
    title_threshold_a: float = Field(default=1.0, ge=0.0, le=1.0)
    title_threshold_b: float = Field(default=1.0, ge=0.0, le=1.0)
    year_max_difference: int = Field(default=0, ge=0)


class ExtractionSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    insert_batch_size: int = Field(default=1000, ge=1)
    extract_message_records: int = Field(default=25000, ge=1)
    insert_message_records: int = Field(default=5000, ge=1)
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=300.0, gt=0)


class DownloadSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)
    download_batch_size: int = Field(default=100, ge=1)
    download_delay: float = Field(default=1.0, ge=0)
    attempt_count: int = Field(default=3, ge=1)
    delay_between_attempts: float = Field(default=5.0, ge=0)
    max_allowed_consecutive_errors: int = Field(default=10, ge=0)
    max_workers: int = Field(default=4, ge=1)


class RunConfig(BaseModel):
    """Everything one pipeline run needs, usually loaded from a JSON file."""

    model_config = ConfigDict(frozen=True)

    source_a: RepositoryEndpoint
    source_b: RepositoryEndpoint
    destination: RepositoryEndpoint
    source_a_rules: FormatRules = Field(default_factory=FormatRules)
    source_b_rules: FormatRules = Field(default_factory=FormatRules)
    settings: ExtractionSettings = Field(default_factory=ExtractionSettings)
    tolerance: ToleranceThresholds = Field(default_factory=ToleranceThresholds)
    similarity: SimilaritySelector = Field(default_factory=SimilaritySelector)
    download: DownloadSettings = Field(default_factory=DownloadSettings)
