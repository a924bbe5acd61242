import pytest
import tinify

from imageflow.exceptions import TranscoderException
from imageflow.image_service.coordinator import TranscodingCoordinator
from imageflow.image_service.inspector import ImageInfo
from imageflow.image_service.models import CompressionOptions, ImageFormat, SlotKind, VariantSlot
from imageflow.image_service.paths import allocate_paths
from imageflow.image_service.transcoder import TinifyTranscoder, build_transcoder

from helpers import FakeStorage


def fake_source(mocker, outputs):
    """A tinify Source whose convert(type=...) yields `outputs[type]` (bytes or an exception)."""
    source = mocker.Mock()

    def convert(type):
        out = outputs[type]
        converted = mocker.Mock()
        if isinstance(out, Exception):
            converted.result.side_effect = out
        else:
            converted.result.return_value.to_buffer.return_value = out
        return converted

    source.convert.side_effect = convert
    return source


def test_build_transcoder_requires_key():
    assert build_transcoder(None, ["webp"]) is None
    assert build_transcoder("", ["webp"]) is None
    assert isinstance(build_transcoder("key", ["webp", "avif"]), TinifyTranscoder)
    assert tinify.key == "key"


@pytest.mark.asyncio
async def test_converts_to_both_targets(mocker):
    source = fake_source(mocker, {"image/webp": b"webp!", "image/avif": b"avif!!"})
    from_buffer = mocker.patch("imageflow.image_service.transcoder.tinify.from_buffer", return_value=source)

    result = await TinifyTranscoder("key").transcode(b"jpeg", ImageFormat.JPEG, CompressionOptions())

    from_buffer.assert_called_once_with(b"jpeg")
    assert result.webp.data == b"webp!"
    assert result.avif.size == 6


@pytest.mark.asyncio
async def test_declined_target_is_omitted(mocker):
    source = fake_source(mocker, {
        "image/webp": b"webp!",
        "image/avif": tinify.ClientError("not supported", "Unsupported", 415),
    })
    mocker.patch("imageflow.image_service.transcoder.tinify.from_buffer", return_value=source)

    result = await TinifyTranscoder("key").transcode(b"png", ImageFormat.PNG, CompressionOptions())

    assert result.webp.data == b"webp!"
    assert result.avif is None


@pytest.mark.asyncio
async def test_only_wanted_and_configured_targets_are_requested(mocker):
    source = fake_source(mocker, {"image/webp": b"w", "image/avif": b"a"})
    mocker.patch("imageflow.image_service.transcoder.tinify.from_buffer", return_value=source)

    transcoder = TinifyTranscoder("key", formats=["avif"])
    result = await transcoder.transcode(b"png", ImageFormat.PNG, CompressionOptions(generate_avif=True))
    assert result.webp is None
    assert result.avif.data == b"a"

    source.convert.reset_mock()
    result = await transcoder.transcode(b"png", ImageFormat.PNG, CompressionOptions(generate_avif=False))
    assert result.avif is None
    source.convert.assert_not_called()


@pytest.mark.asyncio
async def test_service_failure_is_a_hard_error(mocker):
    mocker.patch(
        "imageflow.image_service.transcoder.tinify.from_buffer",
        side_effect=tinify.ServerError("unavailable", "InternalServerError", 503),
    )

    with pytest.raises(TranscoderException):
        await TinifyTranscoder("key").transcode(b"jpeg", ImageFormat.JPEG, CompressionOptions())


@pytest.mark.asyncio
async def test_failed_target_keeps_the_other(mocker):
    source = fake_source(mocker, {
        "image/webp": b"webp!",
        "image/avif": tinify.ServerError("unavailable", "InternalServerError", 503),
    })
    mocker.patch("imageflow.image_service.transcoder.tinify.from_buffer", return_value=source)

    result = await TinifyTranscoder("key").transcode(b"jpeg", ImageFormat.JPEG, CompressionOptions())

    assert result.webp.data == b"webp!"
    assert result.avif is None


@pytest.mark.asyncio
async def test_failed_target_is_deferred_by_the_coordinator(mocker):
    source = fake_source(mocker, {
        "image/webp": b"webp!",
        "image/avif": tinify.ServerError("unavailable", "InternalServerError", 503),
    })
    mocker.patch("imageflow.image_service.transcoder.tinify.from_buffer", return_value=source)
    storage = FakeStorage()
    coordinator = TranscodingCoordinator(storage, TinifyTranscoder("key"), 10_000)
    info = ImageInfo(format=ImageFormat.JPEG, width=500, height=800)
    paths = allocate_paths("p1", info.orientation, info.format)

    variants = await coordinator.store(b"x" * 100, info, paths)

    assert variants.webp == VariantSlot.concrete(paths.webp, 5)
    assert variants.avif.kind is SlotKind.TRANSFORM
    assert set(storage.objects) == {paths.original, paths.webp}
