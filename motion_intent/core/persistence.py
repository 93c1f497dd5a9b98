"""
JSON file persistence for trained models.

One file per user holds the serialized ClassifierModel together with the
calibration quality it was trained with. Missing or unreadable files load as
"no model"; they never raise into the caller.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class ModelStore:
    """
    Directory of per-user model files.
    """

    def __init__(self, directory='models'):
        """
        Args:
            directory (str): Directory holding the model files (created on first save)
        """
        self.directory = Path(directory)

    def path_for(self, user_id):
        safe_id = re.sub(r'[^A-Za-z0-9_.-]', '_', str(user_id)) or 'default'
        return self.directory / f"intention_model_{safe_id}.json"

    def exists(self, user_id):
        return self.path_for(user_id).exists()

    def save(self, user_id, state, calibration_quality=0):
        """
        Save a serialized model.

        Args:
            user_id (str): Owner of the model
            state (dict): Output of TrainableClassifier.serialize_model()
            calibration_quality (int): Quality score stored alongside

        Returns:
            Path: Path of the written file
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        filepath = self.path_for(user_id)

        data = {
            'user_id': user_id,
            'saved_at': datetime.now().isoformat(),
            'calibration_quality': int(calibration_quality),
            'model': state,
        }

        # Atomic replace
        tmp_path = filepath.with_suffix('.json.tmp')
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(filepath)

        logger.info(f"Model saved to {filepath}")
        return filepath

    def load(self, user_id):
        """
        Load a serialized model.

        Args:
            user_id (str): Owner of the model

        Returns:
            tuple: (state dict or None, calibration quality)
        """
        filepath = self.path_for(user_id)
        if not filepath.exists():
            logger.info(f"No saved model for user {user_id}")
            return None, 0

        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
            state = data['model']
            quality = int(data.get('calibration_quality', 0))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Failed to load model from {filepath}: {e}")
            return None, 0

        if not isinstance(state, dict):
            logger.warning(f"Model file {filepath} holds no model state")
            return None, 0

        logger.info(f"Model loaded from {filepath}")
        return state, quality

    def delete(self, user_id):
        """
        Returns:
            bool: True if a file was removed
        """
        filepath = self.path_for(user_id)
        if filepath.exists():
            filepath.unlink()
            logger.info(f"Deleted model file {filepath}")
            return True
        return False
