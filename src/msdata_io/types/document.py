"""TypedDict definitions for document-level metadata.

Populated from the preamble that precedes the record lists.
"""

from __future__ import annotations

from typing import TypedDict

from msdata_io.types.record import ParamMap, UserParam


class SourceFile(TypedDict):
    """An input file the document was derived from.

    Attributes:
        id: Source file identifier.
        name: File name.
        location: URI of the containing directory.
        params: File format, checksum and native id format parameters.
    """

    id: str
    name: str
    location: str
    params: ParamMap


class FileDescription(TypedDict):
    """Description of the document's contents and provenance.

    Attributes:
        contents: Parameters describing the kinds of spectra present.
        source_files: Files the document was derived from.
    """

    contents: ParamMap
    source_files: list[SourceFile]


class ParamGroup(TypedDict):
    """A referenceable parameter group.

    Attributes:
        id: Group identifier.
        params: CV parameters of the group.
        user_params: User parameters of the group.
    """

    id: str
    params: ParamMap
    user_params: list[UserParam]


class DocumentMeta(TypedDict):
    """Metadata collected from the document preamble.

    Attributes:
        file_description: File contents and source files.
        param_groups: Referenceable parameter groups by id.
        run_id: Identifier of the run element ("" if absent).
        spectrum_count: Declared spectrum list count (None if absent).
        chromatogram_count: Declared chromatogram list count (None if absent).
    """

    file_description: FileDescription
    param_groups: dict[str, ParamGroup]
    run_id: str
    spectrum_count: int | None
    chromatogram_count: int | None


def empty_document_meta() -> DocumentMeta:
    """Create DocumentMeta with no content."""
    return DocumentMeta(
        file_description=FileDescription(contents={}, source_files=[]),
        param_groups={},
        run_id="",
        spectrum_count=None,
        chromatogram_count=None,
    )


__all__ = [
    "DocumentMeta",
    "FileDescription",
    "ParamGroup",
    "SourceFile",
    "empty_document_meta",
]
