"""
Main entry point for the Interview Analyzer.

This module provides the command-line interface: it opens the camera and
microphone, runs a live analysis session and reports the aggregated results.
"""

import argparse
import asyncio
import json
import logging
import platform
import sys
import time
from typing import Optional

from dotenv import load_dotenv

from .analysis_manager import AnalysisManager
from .api_server import AnalysisAPIServer
from .config import Config
from .exceptions import ResourceAcquisitionError
from .sources import CameraSource, MicrophoneSource
from .utils import format_duration, setup_logging

logger = logging.getLogger(__name__)

STATUS_INTERVAL = 5.0  # seconds between stress status lines


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Real-time interview behavioral analysis',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  interview-analyzer                         # Run until Ctrl-C
  interview-analyzer --duration 120          # Stop after two minutes
  interview-analyzer --camera 1 --device 2   # Pick capture devices
  interview-analyzer --api-port 8083         # Serve live results over HTTP
  interview-analyzer --output results.json   # Save the final results
        """
    )

    parser.add_argument('--camera', type=int,
                        help='Camera index (default: from config, 0)')
    parser.add_argument('--device', type=str,
                        help='Audio input device index or name')
    parser.add_argument('--duration', type=float,
                        help='Stop after this many seconds')

    parser.add_argument('--config', type=str,
                        help='Load configuration from JSON file')
    parser.add_argument('--save-config', type=str,
                        help='Save current configuration to JSON file and exit')
    parser.add_argument('--log-level', type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: LOG_LEVEL env var or INFO)')

    parser.add_argument('--api-port', type=int,
                        help='Serve live analysis on this HTTP port')
    parser.add_argument('--output', type=str,
                        help='Write the final analysis results to this JSON file')

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> Config:
    """Create configuration from command line arguments."""
    if args.config:
        config = Config.load_from_file(args.config)
        logger.info(f"Loaded configuration from {args.config}")
    else:
        config = Config()

    if args.camera is not None:
        config.camera_id = args.camera
    if args.device is not None:
        config.audio_device = args.device
    if args.log_level:
        config.log_level = args.log_level

    return config


def _audio_device(value: Optional[str]):
    # sounddevice accepts either an index or a (partial) device name
    if value is not None and value.isdigit():
        return int(value)
    return value


def print_system_info(config: Config) -> None:
    print("=" * 60)
    print("Interview Analyzer - Real-time Behavioral Analysis")
    print("=" * 60)
    print(f"Platform: {platform.platform()}")
    print(f"Python: {platform.python_version()}")
    print(f"Session: {config.session_name}")
    print(f"Camera: {config.camera_id} ({config.resolution[0]}x{config.resolution[1]})")
    print(f"Audio device: {config.audio_device if config.audio_device is not None else 'default'}")
    print("=" * 60)


def print_results(results: dict, duration: float) -> None:
    tone = results['toneAnalysis']
    emotion = results['emotionAnalysis']
    gesture = results['gestureAnalysis']
    stress = results['stressAnalysis']

    print("\n" + "=" * 60)
    print("SESSION SUMMARY")
    print("=" * 60)
    print(f"Duration: {format_duration(duration)}")
    print(f"Tone: pitch {tone['pitch']}, {tone['speed']} wpm, {tone['confidence']}")
    print(f"  {tone['feedback']}")
    print(f"Emotion: {emotion['primary']} ({emotion['intensity']}%)")
    print(f"  {emotion['feedback']}")
    print(f"Gestures: posture {gesture['posture']}, hands {gesture['handMovements']}, "
          f"face {gesture['facialEngagement']}, body {gesture['bodyLanguage']}")
    print(f"  {gesture['feedback']}")
    print(f"Stress: {'yes' if stress['stress'] else 'no'} (confidence {stress['confidence']:.2f})")
    print(f"  {stress['feedback']}")
    print("=" * 60)


async def run_session(config: Config, duration: Optional[float] = None,
                      api_port: Optional[int] = None) -> Optional[dict]:
    """Run one live session. Returns the final results, or None if start failed."""
    camera = CameraSource(config.camera_id, config.resolution)
    microphone = MicrophoneSource(config.tone, device=_audio_device(config.audio_device))
    manager = AnalysisManager(config)
    api_server = AnalysisAPIServer(manager, port=api_port) if api_port else None

    camera.open()
    session_start = time.time()
    try:
        if api_server is not None:
            await api_server.start()

        logger.info("Starting analysis; hold a neutral expression while the baseline is calibrated")
        if not await manager.start(camera, microphone):
            logger.error("Failed to start analysis")
            return None

        while duration is None or time.time() - session_start < duration:
            await asyncio.sleep(STATUS_INTERVAL)
            level = manager.stress_analyzer.get_current_stress_level()
            logger.info(f"Stress: {level.stress} (confidence {level.confidence:.2f}) "
                        f"{', '.join(level.features)}")

        return manager.get_analysis_results().to_dict()
    finally:
        results = manager.get_analysis_results().to_dict() if manager.is_active() else None
        await manager.close()
        if api_server is not None:
            await api_server.stop()
        camera.close()
        if results is not None:
            # Interrupted sessions still report what was collected
            print_results(results, time.time() - session_start)


def main(argv=None) -> int:
    """Main entry point."""
    load_dotenv()
    args = parse_arguments(argv)

    try:
        config = create_config_from_args(args)
    except (OSError, ValueError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    if args.save_config:
        config.save_to_file(args.save_config)
        print(f"Configuration saved to {args.save_config}")
        return 0

    if config.enable_logging:
        setup_logging(config.log_level)
    print_system_info(config)

    try:
        results = asyncio.run(run_session(config, args.duration, args.api_port))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0
    except ResourceAcquisitionError as e:
        print(f"Error: {e}")
        return 1

    if results is None:
        return 1

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(results, f, indent=2)
        print(f"Results saved to {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
