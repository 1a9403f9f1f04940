"""Tests for the codec registry."""

from __future__ import annotations

import base64
import zlib

import numpy as np
import pytest

from msdata_io._exceptions import (
    CodecFailureError,
    MalformedEncodingError,
    TruncatedArrayError,
    UnsupportedCodecError,
)
from msdata_io.codecs.registry import (
    COMPRESSION_ACCESSIONS,
    CodecRegistry,
    ZlibCompression,
    default_registry,
    numpy_dtype,
)
from msdata_io.config import DefaultCompression
from msdata_io.types.codec import make_descriptor


class TestDefaultRegistry:
    """Tests for default_registry."""

    def test_registers_lossless_codecs(self) -> None:
        """Test none and zlib are always available."""
        reg = default_registry()
        assert "none" in reg.compressions()
        assert "zlib" in reg.compressions()
        assert reg.encodings() == ["base64", "none"]

    def test_registries_are_independent(self) -> None:
        """Test registering on one registry leaves another untouched."""
        first = default_registry()
        second = default_registry()
        first.register_compression("custom", ZlibCompression())
        assert "custom" in first.compressions()
        assert "custom" not in second.compressions()

    def test_empty_registry_resolves_nothing(self) -> None:
        """Test a bare registry rejects every descriptor."""
        with pytest.raises(UnsupportedCodecError) as exc_info:
            CodecRegistry().resolve(make_descriptor())
        assert exc_info.value.component == "compression"
        assert exc_info.value.value == "none"


class TestResolve:
    """Tests for CodecRegistry.resolve."""

    def test_unknown_encoding_names_component(self) -> None:
        """Test the failing component is reported."""
        reg = CodecRegistry()
        reg.register_compression("none", ZlibCompression())
        with pytest.raises(UnsupportedCodecError) as exc_info:
            reg.resolve(make_descriptor())
        assert exc_info.value.component == "encoding"

    def test_numpress_without_backend_is_unsupported(self) -> None:
        """Test numpress names fail when the scheme is not registered."""
        reg = CodecRegistry()
        reg.register_compression("zlib", ZlibCompression())
        with pytest.raises(UnsupportedCodecError, match="numpress-linear"):
            reg.resolve(make_descriptor(compression="numpress-linear"))

    def test_big_endian_dtype(self) -> None:
        """Test byte order is applied to the element type."""
        assert numpy_dtype("float32", "big") == np.dtype(">f4")
        assert numpy_dtype("int64", "little") == np.dtype("<i8")


class TestDecode:
    """Tests for CodecRegistry.decode."""

    def test_decodes_zlib_base64(self) -> None:
        """Test the common mzML transport form."""
        raw = np.array([1.0, 2.5], dtype="<f8").tobytes()
        text = base64.b64encode(zlib.compress(raw))
        values = default_registry().decode(make_descriptor(compression="zlib"), text)
        assert values.tolist() == [1.0, 2.5]

    def test_tolerates_whitespace_in_base64(self) -> None:
        """Test line breaks inside the base64 text are ignored."""
        text = base64.b64encode(np.array([3, 4], dtype="<i4").tobytes())
        wrapped = text[:4] + b"\n  " + text[4:]
        values = default_registry().decode(make_descriptor(dtype="int32"), wrapped)
        assert values.tolist() == [3, 4]

    def test_big_endian_values_come_back_native(self) -> None:
        """Test big-endian input is returned in native byte order."""
        text = base64.b64encode(np.array([1.5, -2.0], dtype=">f4").tobytes())
        values = default_registry().decode(make_descriptor(dtype="float32", byte_order="big"), text)
        assert values.dtype.isnative
        assert values.tolist() == [1.5, -2.0]

    def test_invalid_base64_raises(self) -> None:
        """Test characters outside the alphabet are rejected."""
        with pytest.raises(MalformedEncodingError) as exc_info:
            default_registry().decode(make_descriptor(), b"AAAA$$$$")
        assert exc_info.value.encoding == "base64"

    def test_corrupt_zlib_raises_codec_failure(self) -> None:
        """Test zlib errors carry the codec name."""
        text = base64.b64encode(b"definitely not deflate")
        with pytest.raises(CodecFailureError) as exc_info:
            default_registry().decode(make_descriptor(compression="zlib"), text)
        assert exc_info.value.codec == "zlib"

    def test_partial_element_raises_truncated(self) -> None:
        """Test byte counts that are not a whole number of elements."""
        text = base64.b64encode(b"\x00" * 12)
        with pytest.raises(TruncatedArrayError) as exc_info:
            default_registry().decode(make_descriptor(), text)
        assert exc_info.value.actual == 12

    def test_empty_payload_is_empty_array(self) -> None:
        """Test an empty binary decodes to zero elements."""
        values = default_registry().decode(make_descriptor(), b"")
        assert values.shape == (0,)


class TestEncode:
    """Tests for CodecRegistry.encode."""

    @pytest.mark.parametrize("compression", ["none", "zlib"])
    def test_lossless_round_trip(self, compression: DefaultCompression) -> None:
        """Test decode(encode(x)) == x for lossless codecs."""
        reg = default_registry()
        descriptor = make_descriptor(compression=compression)
        values = np.array([0.0, 1e-300, -5.5, 1e300], dtype=np.float64)
        assert np.array_equal(reg.decode(descriptor, reg.encode(descriptor, values)), values)
        assert not reg.is_lossy(descriptor)
        assert reg.tolerance(descriptor, values).tolist() == [0.0, 0.0, 0.0, 0.0]

    def test_raw_encoding_skips_base64(self) -> None:
        """Test the "none" encoding passes bytes through."""
        reg = default_registry()
        descriptor = make_descriptor(encoding="none")
        payload = reg.encode(descriptor, np.array([2.0], dtype=np.float64))
        assert payload == np.array([2.0], dtype="<f8").tobytes()


class TestAccessions:
    """Tests for CV accession lookups."""

    def test_compression_accessions_round_trip(self) -> None:
        """Test every known accession maps back to itself."""
        reg = default_registry()
        for accession, name in COMPRESSION_ACCESSIONS.items():
            assert reg.compression_for_accession(accession) == name
            assert reg.accession_for_compression(name) == accession

    def test_dtype_accessions(self) -> None:
        """Test binary data type accessions."""
        reg = default_registry()
        assert reg.dtype_for_accession("MS:1000523") == "float64"
        assert reg.accession_for_dtype("float32") == "MS:1000521"

    def test_unknown_accession_raises(self) -> None:
        """Test unknown compression accessions are unsupported."""
        with pytest.raises(UnsupportedCodecError):
            default_registry().compression_for_accession("MS:0000000")


class TestNumpress:
    """Tests for the MS-Numpress codecs."""

    def test_linear_within_tolerance(self) -> None:
        """Test linear prediction stays within 0.5 / fixed point."""
        pytest.importorskip("pynumpress")
        reg = default_registry()
        descriptor = make_descriptor(compression="numpress-linear")
        values = np.linspace(100.0, 1500.0, 64)
        decoded = reg.decode(descriptor, reg.encode(descriptor, values))
        assert reg.is_lossy(descriptor)
        assert np.all(np.abs(decoded - values) <= reg.tolerance(descriptor, values) + 1e-9)

    def test_pic_rounds_to_integers(self) -> None:
        """Test positive integer compression error is at most 0.5."""
        pytest.importorskip("pynumpress")
        reg = default_registry()
        descriptor = make_descriptor(compression="numpress-pic+zlib")
        values = np.array([0.2, 10.7, 99.5, 1234.4], dtype=np.float64)
        decoded = reg.decode(descriptor, reg.encode(descriptor, values))
        assert np.all(np.abs(decoded - values) <= 0.5)

    def test_slof_relative_error(self) -> None:
        """Test short logged float stays within its relative bound."""
        pytest.importorskip("pynumpress")
        reg = default_registry()
        descriptor = make_descriptor(compression="numpress-slof")
        values = np.array([1.0, 250.0, 5000.0, 1.0e5], dtype=np.float64)
        decoded = reg.decode(descriptor, reg.encode(descriptor, values))
        assert np.all(np.abs(decoded - values) <= reg.tolerance(descriptor, values) + 1e-9)

    def test_empty_array(self) -> None:
        """Test empty arrays encode to an empty payload."""
        pytest.importorskip("pynumpress")
        reg = default_registry()
        descriptor = make_descriptor(compression="numpress-linear", encoding="none")
        assert reg.encode(descriptor, np.zeros(0, dtype=np.float64)) == b""
        assert reg.decode(descriptor, b"").shape == (0,)
