"""Command-line interface for live audio analysis."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .analysis.analyzer import AnalyzerStage
from .analysis.audio_capture import PyAudioCaptureDevice, load_wav
from .analysis.classifier import CLASSIFICATION_STRATEGIES, classify_buffer, get_classifier
from .analysis.config import DEFAULT_CHUNK_SIZE, DEFAULT_SAMPLE_RATE, FRAME_HOP_SIZE
from .analysis.exceptions import AudioAnalysisError, AudioCaptureError
from .analysis.filter_stage import FILTER_PRESETS, FilterStage
from .analysis.interfaces import UploadService
from .analysis.logging_utils import configure_logging
from .analysis.models import AudioBlob, ClassificationResult
from .analysis.performance_monitor import BlockTimingMonitor
from .analysis.recording import RecordingSession
from .analysis.service import AudioAnalysisService
from .analysis.signal_graph import AudioSource, SignalGraph


class FileUploadService(UploadService):
    """Stores finished recordings on the local filesystem."""

    def __init__(self, output_path: Path) -> None:
        self.output_path = output_path

    def deliver(self, blob: AudioBlob) -> str:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_bytes(blob.data)
        return str(self.output_path)


def format_result(result: ClassificationResult) -> str:
    confidence_percent = round(result.confidence * 100)
    return f"{result.label.value} ({confidence_percent}%) - {result.label.description}"


class AudioAnalysisCLI:
    """Live microphone analysis printed to the terminal."""

    def __init__(self, service: AudioAnalysisService | None = None) -> None:
        """
        Initialize the CLI.

        Args:
            service: Optional AudioAnalysisService instance. If None, creates a new one.
        """
        self._service = service or AudioAnalysisService()
        self._running = False
        self._classification_count = 0
        self._last_label = None

    async def start(self) -> None:
        try:
            print("🎤 Starting audio analysis...")
            self._service.set_classification_callback(self._on_classification)
            await self._service.play()
            self._running = True
            print("✅ Listening. Press Ctrl+C to stop.")
        except AudioCaptureError as e:
            self._running = False
            print(f"❌ Could not open microphone: {e}")
            await self._service.close()

    async def stop(self) -> None:
        if not self._running:
            return
        print("🛑 Stopping audio analysis...")
        await self._service.close()
        self._running = False

    def _on_classification(self, result: ClassificationResult) -> None:
        self._classification_count += 1
        if result.label is not self._last_label:
            self._last_label = result.label
            print(f"[{self._classification_count}] {format_result(result)}")

    async def run(self) -> None:
        try:
            await self.start()
            while self._running:
                await asyncio.sleep(0.1)
        except (KeyboardInterrupt, asyncio.CancelledError):
            print("\n👋 Goodbye!")
        finally:
            await self.stop()


def classify_file(path: Path, mode: str) -> int:
    """Classify a whole WAV file and print the result."""
    samples, sample_rate = load_wav(path)
    result = classify_buffer(samples, sample_rate, get_classifier(mode))
    stats = result.source_stats
    print(f"{path.name}: {format_result(result)}")
    print(
        f"  frames={stats.frame_count} rms={stats.mean_rms:.4f} zcr={stats.mean_zcr:.3f} "
        f"centroid={stats.mean_spectral_centroid:.0f}Hz flatness={stats.mean_spectral_flatness:.3f} "
        f"mfcc_std={stats.mfcc_std_dev:.2f}"
    )
    return 0


def analyze_file(
    path: Path,
    mode: str,
    filter_preset: str | None = None,
    block_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Stream a WAV file block by block through the graph, printing live classifications."""
    samples, sample_rate = load_wav(path)

    monitor = BlockTimingMonitor()
    graph = SignalGraph(monitor)
    handle = graph.bind(AudioSource(path.name, sample_rate))

    filter_stage = None
    if filter_preset:
        filter_stage = FilterStage()
        filter_stage.apply_preset(filter_preset)
    analyzer = AnalyzerStage(get_classifier(mode))

    def on_classification(result: ClassificationResult) -> None:
        seconds = analyzer.latest_frame.timestamp * FRAME_HOP_SIZE / sample_rate
        print(f"[{seconds:7.2f}s] {format_result(result)}")

    analyzer.set_classification_callback(on_classification)
    if filter_stage is not None:
        graph.attach_stage(handle, filter_stage)
    graph.attach_stage(handle, analyzer)

    try:
        for start in range(0, len(samples), block_size):
            graph.dispatch(handle, samples[start : start + block_size])
    finally:
        graph.release(handle)

    averages = analyzer.average_features()
    if averages:
        print(
            f"Recent averages: rms={averages['avg_rms']:.4f} zcr={averages['avg_zcr']:.3f} "
            f"centroid={averages['avg_spectral_centroid']:.0f}Hz"
        )
    stats = monitor.get_stats()
    print(
        f"Dispatched {stats.blocks_processed} blocks, "
        f"avg {stats.average_latency_ms:.3f}ms, missed deadlines: {stats.missed_deadlines}"
    )
    return 0


def record_to_file(output_path: Path, seconds: float, sample_rate: int) -> int:
    """Record from the microphone for a fixed time and store the result as WAV."""
    session = RecordingSession(PyAudioCaptureDevice(sample_rate=sample_rate))

    try:
        session.start()
    except AudioCaptureError as e:
        print(f"❌ Could not open microphone: {e}")
        return 1

    print(f"🔴 Recording {seconds:g}s to {output_path}...")
    try:
        while session.elapsed < seconds:
            session.poll()
    except KeyboardInterrupt:
        print("\n⏹️ Stopped early")
    finally:
        blob = session.stop()

    reference = session.deliver(FileUploadService(output_path))
    print(f"✅ Saved {blob.duration:.2f}s ({blob.size} bytes, {blob.mime_type}) to {reference}")
    return 0


async def main() -> None:
    """Main entry point for live analysis."""
    cli = AudioAnalysisCLI()
    try:
        await cli.run()
    except KeyboardInterrupt:
        pass  # Graceful shutdown already handled in cli.run()


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Audio Insight - real-time audio feature extraction and classification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  audio-insight                                    # Live microphone analysis
  audio-insight classify speech.wav                # Classify a whole file
  audio-insight analyze song.wav --mode voting     # Stream a file with live results
  audio-insight analyze talk.wav --filter-preset voice-enhance
  audio-insight record take.wav --seconds 10       # Record the microphone to WAV
  audio-insight -v listen                          # Verbose logging

Controls:
  Ctrl+C    - Stop and exit gracefully
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )

    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes per-block details)",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("listen", help="Analyse the microphone live (default)")

    classify_parser = subparsers.add_parser("classify", help="Classify a WAV file as a whole")
    classify_parser.add_argument("file", type=Path, help="WAV file to classify")
    classify_parser.add_argument(
        "--mode",
        choices=sorted(CLASSIFICATION_STRATEGIES),
        default="rules",
        help="Classification strategy (default: rules)",
    )

    analyze_parser = subparsers.add_parser(
        "analyze", help="Stream a WAV file through the live pipeline"
    )
    analyze_parser.add_argument("file", type=Path, help="WAV file to analyse")
    analyze_parser.add_argument(
        "--mode",
        choices=sorted(CLASSIFICATION_STRATEGIES),
        default="rules",
        help="Classification strategy (default: rules)",
    )
    analyze_parser.add_argument(
        "--filter-preset",
        choices=sorted(FILTER_PRESETS),
        default=None,
        help="Enable the filter stage with a preset",
    )
    analyze_parser.add_argument(
        "--block-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        metavar="SAMPLES",
        help=f"Samples per dispatched block (default: {DEFAULT_CHUNK_SIZE})",
    )

    record_parser = subparsers.add_parser("record", help="Record the microphone to a WAV file")
    record_parser.add_argument("output", type=Path, help="Output WAV file")
    record_parser.add_argument(
        "--seconds",
        type=float,
        default=5.0,
        help="Recording length in seconds (default: 5)",
    )
    record_parser.add_argument(
        "--sample-rate",
        type=int,
        default=DEFAULT_SAMPLE_RATE,
        help=f"Capture sample rate in Hz (default: {DEFAULT_SAMPLE_RATE})",
    )

    return parser


def handle_arguments(args: argparse.Namespace) -> int:
    """
    Run the selected command.

    Returns:
        Process exit code
    """
    configure_logging(verbose=args.verbose, trace=args.trace)
    command = args.command or "listen"

    try:
        if command == "classify":
            return classify_file(args.file, args.mode)
        if command == "analyze":
            if args.block_size <= 0:
                print("❌ Block size must be positive")
                return 1
            return analyze_file(args.file, args.mode, args.filter_preset, args.block_size)
        if command == "record":
            if args.seconds <= 0:
                print("❌ Recording length must be positive")
                return 1
            return record_to_file(args.output, args.seconds, args.sample_rate)

        asyncio.run(main())
        return 0

    except FileNotFoundError as e:
        print(f"❌ File not found: {e.filename}")
        return 1
    except (AudioAnalysisError, ValueError) as e:
        logging.error(f"Command '{command}' failed: {e}")
        print(f"❌ {e}")
        return 1


def cli_entry_with_args(argv: list[str] | None = None) -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()

    try:
        args = parser.parse_args(argv)
        sys.exit(handle_arguments(args))
    except KeyboardInterrupt:
        pass  # Graceful shutdown


if __name__ == "__main__":
    cli_entry_with_args()
