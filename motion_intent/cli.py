"""
Command line interface for motion_intent.

This script provides utilities to:
- Train the personalised classifier on synthetic trajectories
- Train from calibration samples collected in earlier sessions
- Evaluate a saved model against synthetic test data
- Report the calibration quality of a sample set
- Run live detection from a camera (requires the `camera` extra)

USAGE:
    # Train on synthetic data and save the model for a user
    python -m motion_intent --train-synthetic --samples 200 --user-id alice

    # Train from collected calibration files
    python -m motion_intent --train-from-collected --data-dir data/calibration --user-id alice

    # Evaluate the saved model
    python -m motion_intent --evaluate --user-id alice

    # Calibration quality of collected data
    python -m motion_intent --quality --data-dir data/calibration

    # Live detection
    python -m motion_intent --run-camera --user-id alice
"""

import argparse
import logging
from pathlib import Path

from motion_intent.classifier.synthetic import generate_synthetic_samples
from motion_intent.config import DetectorConfig
from motion_intent.core.orchestrator import DetectionOrchestrator
from motion_intent.core.persistence import ModelStore

logger = logging.getLogger(__name__)


def build_config(args):
    """
    Build the detector configuration from a JSON file and command line overrides.
    """
    config = DetectorConfig.from_json(args.config) if args.config else DetectorConfig()
    if args.epochs is not None:
        config.epochs = args.epochs
    if args.batch_size is not None:
        config.batch_size = args.batch_size
    return config


def log_progress(progress):
    """Log training progress every 10%."""
    percent = int(round(progress * 100))
    if percent % 10 == 0:
        logger.info(f"Training progress: {percent}%")


def report_training(result):
    if not result.success:
        logger.error(f"Training failed ({result.reason}): {result.message}")
        return

    logger.info("Training complete!")
    logger.info(f"  Samples: {result.num_samples}")
    logger.info(f"  Epochs: {result.epochs_run}")
    logger.info(f"  Accuracy: {result.accuracy:.3f}")
    logger.info(f"  Validation accuracy: {result.validation_accuracy:.3f}")
    if result.low_confidence:
        logger.warning("  Model flagged low-confidence: calibration data is imbalanced")


def train_synthetic(config, num_samples, user_id, model_dir, seed=None):
    """
    Train and save a model on synthetic trajectories.

    Returns:
        TrainingResult: Outcome of the training
    """
    detector = DetectionOrchestrator(config, user_id=user_id)
    detector.calibration.add_samples(generate_synthetic_samples(num_samples, seed=seed))

    quality = detector.calibration.quality_breakdown
    logger.info(f"Synthetic calibration quality: {quality.total}/100 ({quality.status})")

    result = detector.train_model(progress_callback=log_progress)
    report_training(result)
    if result.success:
        detector.save_model(ModelStore(model_dir), user_id)
    return result


def load_collected(detector, data_dir):
    """
    Load every calibration JSON file in a directory into the detector.

    Returns:
        int: Number of samples loaded
    """
    files = sorted(Path(data_dir).glob('*.json'))
    if not files:
        logger.error(f"No calibration files found in {data_dir}")
        return 0

    total = 0
    for path in files:
        try:
            total += detector.calibration.load_samples(path, replace=False)
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping {path}: {e}")
    return total


def train_from_collected(config, data_dir, user_id, model_dir):
    detector = DetectionOrchestrator(config, user_id=user_id)
    if load_collected(detector, data_dir) == 0:
        return None

    result = detector.train_model(progress_callback=log_progress)
    report_training(result)
    if result.success:
        detector.save_model(ModelStore(model_dir), user_id)
    return result


def evaluate(config, user_id, model_dir, num_samples, seed=None):
    """
    Evaluate a saved model and the heuristic on synthetic test data.

    Returns:
        dict: Model metrics, or None if no model could be loaded or there are no samples
    """
    detector = DetectionOrchestrator(config, user_id=user_id)
    if not detector.load_model(ModelStore(model_dir), user_id):
        logger.error(f"No usable model for user {user_id} in {model_dir}")
        return None

    test_samples = generate_synthetic_samples(num_samples, seed=seed)
    if not test_samples:
        logger.error("No test samples to evaluate on (use --samples greater than 0)")
        return None
    metrics = detector.classifier.evaluate(test_samples)

    heuristic_correct = sum(
        1 for s in test_samples
        if detector.heuristic.is_intentional(s.features) == s.is_intentional
    )

    logger.info(f"Evaluation on {metrics['total_samples']} synthetic samples:")
    logger.info(f"  Accuracy: {metrics['accuracy']:.3f}")
    logger.info(f"  Precision: {metrics['precision']:.3f}")
    logger.info(f"  Recall: {metrics['recall']:.3f}")
    logger.info(f"  F1 Score: {metrics['f1_score']:.3f}")
    logger.info(f"  Heuristic accuracy: {heuristic_correct / len(test_samples):.3f}")
    return metrics


def show_quality(config, data_dir, num_samples, seed=None):
    """
    Report the calibration quality of collected (or synthetic) samples.
    """
    detector = DetectionOrchestrator(config)
    if data_dir:
        if load_collected(detector, data_dir) == 0:
            return None
    else:
        detector.calibration.add_samples(generate_synthetic_samples(num_samples, seed=seed))

    quality = detector.calibration.quality_breakdown
    logger.info(f"Calibration quality: {quality.total}/100 ({quality.status})")
    logger.info(f"  Count: {quality.count_score}/25 ({len(detector.calibration.samples)} samples)")
    logger.info(f"  Balance: {quality.balance_score}/25 "
                f"({detector.calibration.intentional_count} intentional, "
                f"{detector.calibration.unintentional_count} unintentional)")
    logger.info(f"  Diversity: {quality.diversity_score}/25")
    logger.info(f"  Separability: {quality.separability_score}/25")
    return quality


def run_camera(config, user_id, model_dir, camera_port=0):
    """
    Live detection loop. Press 'q' to quit.
    """
    import cv2 as cv

    from motion_intent.sources.camera_source import CameraPoseSource

    with DetectionOrchestrator(config, user_id=user_id) as detector:
        if user_id and detector.load_model(ModelStore(model_dir), user_id):
            logger.info(f"Using trained model for {user_id}")
        else:
            logger.info("Using heuristic classifier")

        with CameraPoseSource(camera_port) as source:
            for image, pose_frame in source.frames():
                if pose_frame is not None:
                    for result in detector.process_frame(pose_frame):
                        if result.is_intentional:
                            logger.info(f"Intentional {result.direction} movement of "
                                        f"{result.landmark} ({result.velocity:.0f} px/s, "
                                        f"confidence {result.confidence:.2f}, {result.source})")

                cv.imshow('motion_intent', image)
                if cv.waitKey(1) & 0xFF == ord('q'):
                    source.stop()

        cv.destroyAllWindows()
        logger.info(f"Diagnostics: {detector.run_diagnostics()}")


def build_parser():
    parser = argparse.ArgumentParser(description='Movement-intention detector')

    parser.add_argument('--train-synthetic', action='store_true',
                        help='Train the classifier on synthetic trajectories')
    parser.add_argument('--train-from-collected', action='store_true',
                        help='Train the classifier on collected calibration files')
    parser.add_argument('--evaluate', action='store_true',
                        help='Evaluate the saved model on synthetic data')
    parser.add_argument('--quality', action='store_true',
                        help='Report calibration quality (collected data with --data-dir)')
    parser.add_argument('--run-camera', action='store_true',
                        help='Run live detection from a camera')
    parser.add_argument('--user-id', type=str, default='default',
                        help='User the model belongs to (default: default)')
    parser.add_argument('--model-dir', type=str, default='models',
                        help='Directory of saved models (default: models)')
    parser.add_argument('--data-dir', type=str, default=None,
                        help='Directory of collected calibration JSON files')
    parser.add_argument('--samples', type=int, default=200,
                        help='Number of synthetic samples (default: 200)')
    parser.add_argument('--epochs', type=int, default=None,
                        help='Training epochs (default: from configuration)')
    parser.add_argument('--batch-size', type=int, default=None,
                        help='Training batch size (default: from configuration)')
    parser.add_argument('--camera-port', type=int, default=0,
                        help='Camera index for --run-camera (default: 0)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for synthetic data')
    parser.add_argument('--config', type=str, default=None,
                        help='JSON file of detector option overrides')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    return parser


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    config = build_config(args)

    if args.train_synthetic:
        train_synthetic(config, args.samples, args.user_id, args.model_dir, seed=args.seed)

    if args.train_from_collected:
        if not args.data_dir:
            parser.error('--train-from-collected requires --data-dir')
        train_from_collected(config, args.data_dir, args.user_id, args.model_dir)

    if args.evaluate:
        evaluate(config, args.user_id, args.model_dir, args.samples, seed=args.seed)

    if args.quality:
        show_quality(config, args.data_dir, args.samples, seed=args.seed)

    if args.run_camera:
        run_camera(config, args.user_id, args.model_dir, args.camera_port)

    if not (args.train_synthetic or args.train_from_collected or args.evaluate or
            args.quality or args.run_camera):
        parser.print_help()
        return 1

    return 0
