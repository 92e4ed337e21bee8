"""Track one object through a video file.

The object is given as a box on the first frame. A linear SVM trained on that
frame (jittered copies of the box vs. distant regions) becomes the state the
measurement model starts from and returns to; the tracker then adapts it online.

Usage:
    condensation-track input.mp4 --box 120 80 60 60
    condensation-track input.mp4 --box 120 80 60 60 --output tracked.mp4 --show

Per-frame results are printed to stdout as JSON lines; logs go to stderr.
"""
from __future__ import annotations

import argparse
import dataclasses
import json
import sys
import time
from pathlib import Path

import cv2
import numpy as np

from tracker_shared.logging import configure_logging, get_logger
from tracker_shared.settings import settings

from tracking.config import (
    TrackerConfig,
    build_config,
    build_feature_extractor,
    build_measurement_model,
    build_tracker,
)
from tracking.features import FeatureExtractor
from tracking.schemas import BoundingBox

log = get_logger(__name__)

_BOOTSTRAP_POSITIVES = 10
_BOOTSTRAP_NEGATIVES = 50
_BOOTSTRAP_JITTER = 0.05   # relative shift/scale of positive copies
_LOG_INTERVAL = 100        # frames between throughput log lines


def bootstrap_examples(
    frame: np.ndarray,
    box: BoundingBox,
    config: TrackerConfig,
    feature_extractor: FeatureExtractor,
    rng: np.random.Generator,
) -> tuple[list[np.ndarray], list[np.ndarray]]:
    """Collect training descriptors from a single annotated frame.

    Positives are the box and jittered copies of it; negatives are boxes of the
    same size elsewhere in the frame, overlapping the box by at most
    ``config.negative_overlap``. Either list may come back short, or empty for
    boxes that fill the frame.
    """
    height, width = frame.shape[:2]
    cx, cy = box.center
    positives = [feature_extractor.extract(frame, box)]
    for _ in range(_BOOTSTRAP_POSITIVES - 1):
        scale = 1.0 + rng.normal(0.0, _BOOTSTRAP_JITTER)
        jittered = BoundingBox.from_center(
            cx + rng.normal(0.0, _BOOTSTRAP_JITTER) * box.width,
            cy + rng.normal(0.0, _BOOTSTRAP_JITTER) * box.height,
            box.width * scale,
            box.height * scale,
        )
        positives.append(feature_extractor.extract(frame, jittered))

    negatives = []
    if box.width < width or box.height < height:
        half_w, half_h = box.width / 2.0, box.height / 2.0
        for _ in range(_BOOTSTRAP_NEGATIVES * 20):
            if len(negatives) == _BOOTSTRAP_NEGATIVES:
                break
            candidate = BoundingBox.from_center(
                rng.uniform(half_w, max(half_w, width - half_w)),
                rng.uniform(half_h, max(half_h, height - half_h)),
                box.width,
                box.height,
            )
            if candidate.iou(box) <= config.negative_overlap:
                negatives.append(feature_extractor.extract(frame, candidate))

    positives = [d for d in positives if d is not None]
    negatives = [d for d in negatives if d is not None]
    log.debug("bootstrap_examples_collected", positives=len(positives), negatives=len(negatives))
    return positives, negatives


def _draw(frame: np.ndarray, position: BoundingBox | None, frame_idx: int) -> None:
    if position is not None:
        cv2.rectangle(
            frame, (position.x, position.y), (position.x2, position.y2), (0, 255, 0), 2
        )
    label = f"Frame {frame_idx} | {'found' if position is not None else 'lost'}"
    cv2.putText(frame, label, (10, 28), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2, cv2.LINE_AA)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Learning condensation tracker")
    parser.add_argument("input", help="Input video file path")
    parser.add_argument(
        "--box", nargs=4, type=int, required=True, metavar=("X", "Y", "W", "H"),
        help="Object box on the first frame",
    )
    parser.add_argument("--output", help="Write an annotated video to this path")
    parser.add_argument("--show", action="store_true", help="Display frames live")
    parser.add_argument("--no-learning", action="store_true", help="Keep the bootstrap separator fixed")
    args = parser.parse_args(argv)

    configure_logging(settings.log_format, settings.log_level)

    if not Path(args.input).exists():
        log.error("input_not_found", path=args.input)
        return 1

    x, y, w, h = args.box
    if w <= 0 or h <= 0:
        log.error("invalid_box", box=args.box)
        return 1
    box = BoundingBox(x=x, y=y, width=w, height=h)
    config = dataclasses.replace(build_config(settings), aspect_ratio=h / w)
    if args.no_learning:
        config = dataclasses.replace(config, learning_active=False)

    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        log.error("video_open_failed", path=args.input)
        return 1

    ok, first = cap.read()
    if not ok:
        log.error("video_empty", path=args.input)
        cap.release()
        return 1

    if not box.inside(first.shape[1], first.shape[0]):
        log.error("box_outside_frame", box=box.model_dump(), frame_shape=first.shape[:2])
        cap.release()
        return 1

    rng = np.random.default_rng(config.random_seed)
    feature_extractor = build_feature_extractor(config)
    positives, negatives = bootstrap_examples(first, box, config, feature_extractor, rng)
    model = build_measurement_model(config, feature_extractor=feature_extractor)
    if not model.bootstrap(positives, negatives):
        log.error(
            "bootstrap_failed",
            box=box.model_dump(),
            positives=len(positives),
            negatives=len(negatives),
        )
        model.close()
        cap.release()
        return 1
    tracker = build_tracker(config, measurement_model=model)

    writer = None
    if args.output:
        fps = cap.get(cv2.CAP_PROP_FPS) or 30
        height, width = first.shape[:2]
        writer = cv2.VideoWriter(args.output, cv2.VideoWriter_fourcc(*"mp4v"), fps, (width, height))

    log.info("tracking_starting", input=args.input, box=box.model_dump(), config=dataclasses.asdict(config))

    frame_idx = 0
    found = 0
    t_start = time.monotonic()
    frame = first
    try:
        while ok:
            position = tracker.process(frame)
            found += position is not None
            print(json.dumps({
                "frame": frame_idx,
                "state": tracker.state.value,
                "box": position.model_dump() if position is not None else None,
            }))

            if writer or args.show:
                _draw(frame, position, frame_idx)
            if writer:
                writer.write(frame)
            if args.show:
                cv2.imshow("Condensation", frame)
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    break

            frame_idx += 1
            if frame_idx % _LOG_INTERVAL == 0:
                elapsed = time.monotonic() - t_start
                log.info(
                    "tracking_throughput",
                    frames=frame_idx,
                    fps=round(frame_idx / elapsed, 1) if elapsed > 0 else 0,
                    found=found,
                )
            ok, frame = cap.read()
    finally:
        cap.release()
        tracker.measurement_model.close()
        if writer:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()

    elapsed = time.monotonic() - t_start
    log.info("tracking_finished", frames=frame_idx, found=found, seconds=round(elapsed, 1))
    return 0


if __name__ == "__main__":
    sys.exit(main())
