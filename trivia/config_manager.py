"""
Configuration manager for Trivia Quiz Bot settings and parameters.
"""
import logging
from typing import Any, Dict, List, Optional

from .data_manager import TriviaDataManager
from .models import QuizOptions


class ConfigManager:
    """Manages bot configuration settings and quiz parameters."""

    # Default configuration values
    DEFAULT_AMOUNT = "5"
    DEFAULT_WITH_TIMER = False
    DEFAULT_TIMER_DURATION = 30
    DEFAULT_SCORING_DELAY = 1.5
    DEFAULT_ERROR_TIMEOUT = 5.0
    DEFAULT_SCORE_TABLE = "scores"

    # Validation limits
    MIN_AMOUNT = 1
    MAX_AMOUNT = 50  # Open Trivia DB batch limit
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    DIFFICULTIES = ("easy", "medium", "hard")
    QUESTION_TYPES = ("multiple", "boolean")

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._options = QuizOptions(amount=self.DEFAULT_AMOUNT)
        self._with_timer = self.DEFAULT_WITH_TIMER
        self._timer_duration = self.DEFAULT_TIMER_DURATION
        self.scoring_delay = self.DEFAULT_SCORING_DELAY
        self.error_timeout = self.DEFAULT_ERROR_TIMEOUT
        self.category_url = TriviaDataManager.DEFAULT_CATEGORY_URL
        self.questions_url = TriviaDataManager.DEFAULT_QUESTIONS_URL
        self.api_timeout = TriviaDataManager.DEFAULT_TIMEOUT
        self.score_store_url = ""
        self.score_table = self.DEFAULT_SCORE_TABLE

    def get_quiz_options(self) -> QuizOptions:
        """
        Get a copy of the current quiz options.

        Returns:
            QuizOptions object with current configuration
        """
        return QuizOptions(
            amount=self._options.amount,
            category=self._options.category,
            difficulty=self._options.difficulty,
            type=self._options.type
        )

    def set_amount(self, amount: Any) -> Dict[str, Any]:
        """
        Set the number of questions requested per quiz.

        Args:
            amount: Positive integer, or its string form

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(amount, bool) or not isinstance(amount, (int, str)):
            error_msg = f"Question amount must be an integer, got {type(amount).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(amount).__name__}"
            }

        try:
            count = int(str(amount).strip())
        except ValueError:
            error_msg = f"Question amount is not a number: {amount!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: '{amount}' is not a number"
            }

        if count < self.MIN_AMOUNT:
            error_msg = f"Question amount must be at least {self.MIN_AMOUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too few questions: Minimum is {self.MIN_AMOUNT}"
            }

        if count > self.MAX_AMOUNT:
            error_msg = f"Question amount cannot exceed {self.MAX_AMOUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too many questions: Maximum is {self.MAX_AMOUNT}"
            }

        self._options.amount = str(count)
        self.logger.info(f"Question amount set to {count}")
        return {
            'success': True,
            'message': f"Question amount set to {count}",
            'user_message': f"✅ Question count set to {count}"
        }

    def set_category(self, category_id: Optional[int]) -> Dict[str, Any]:
        """
        Set the category filter, or None for any category.

        The id is not checked against the loaded categories here; the bot
        only offers ids it received from the category provider.
        """
        if category_id is not None and (isinstance(category_id, bool) or not isinstance(category_id, int)):
            error_msg = f"Category must be an integer id, got {type(category_id).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid category id"
            }

        self._options.category = category_id
        label = "any category" if category_id is None else f"category {category_id}"
        self.logger.info(f"Category filter set to {label}")
        return {
            'success': True,
            'message': f"Category filter set to {label}",
            'user_message': f"✅ Questions will come from {label}"
        }

    def set_difficulty(self, difficulty: Optional[str]) -> Dict[str, Any]:
        """Set the difficulty filter, or None for any difficulty."""
        return self._set_choice('difficulty', difficulty, self.DIFFICULTIES)

    def set_question_type(self, question_type: Optional[str]) -> Dict[str, Any]:
        """Set the question type filter, or None for any type."""
        return self._set_choice('type', question_type, self.QUESTION_TYPES)

    def _set_choice(self, attribute: str, value: Optional[str], choices: tuple) -> Dict[str, Any]:
        if value is not None and value not in choices:
            error_msg = f"Invalid {attribute}: {value!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {attribute.capitalize()} must be one of: {', '.join(choices)}"
            }

        setattr(self._options, attribute, value)
        label = value or "any"
        self.logger.info(f"{attribute.capitalize()} set to {label}")
        return {
            'success': True,
            'message': f"{attribute.capitalize()} set to {label}",
            'user_message': f"✅ {attribute.capitalize()} set to {label}"
        }

    def set_with_timer(self, with_timer: bool) -> Dict[str, Any]:
        """Enable or disable the per-question countdown."""
        if not isinstance(with_timer, bool):
            error_msg = f"Timer toggle must be a boolean, got {type(with_timer).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected true/false, got {type(with_timer).__name__}"
            }

        self._with_timer = with_timer
        state = "enabled" if with_timer else "disabled"
        self.logger.info(f"Question timer {state}")
        return {
            'success': True,
            'message': f"Question timer {state}",
            'user_message': f"✅ Question timer {state}"
        }

    def toggle_with_timer(self) -> Dict[str, Any]:
        """Flip the per-question countdown setting."""
        new_value = not self._with_timer
        result = self.set_with_timer(new_value)
        result['new_value'] = new_value
        return result

    def get_with_timer(self) -> bool:
        return self._with_timer

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown length for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(duration, bool) or not isinstance(duration, int):
            error_msg = f"Timer duration must be an integer, got {type(duration).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            }

        if duration < self.MIN_TIMER_DURATION or duration > self.MAX_TIMER_DURATION:
            error_msg = (f"Timer duration must be between {self.MIN_TIMER_DURATION} "
                         f"and {self.MAX_TIMER_DURATION} seconds")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer must be {self.MIN_TIMER_DURATION}-{self.MAX_TIMER_DURATION} seconds"
            }

        self._timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._timer_duration

    def set_api_timeout(self, seconds: Any) -> Dict[str, Any]:
        """Set the request timeout for the trivia API and score store."""
        return self._set_seconds('api_timeout', "API timeout", seconds)

    def set_scoring_delay(self, seconds: Any) -> Dict[str, Any]:
        """Set the pause between an answer and its scoring."""
        return self._set_seconds('scoring_delay', "Scoring delay", seconds)

    def set_error_timeout(self, seconds: Any) -> Dict[str, Any]:
        """Set how long transient errors stay visible."""
        return self._set_seconds('error_timeout', "Error timeout", seconds)

    def _set_seconds(self, attribute: str, label: str, seconds: Any) -> Dict[str, Any]:
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            error_msg = f"{label} must be a number, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds <= 0:
            error_msg = f"{label} must be positive, got {seconds}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} must be greater than 0 seconds"
            }

        setattr(self, attribute, float(seconds))
        self.logger.info(f"{label} set to {float(seconds)} seconds")
        return {
            'success': True,
            'message': f"{label} set to {float(seconds)} seconds",
            'user_message': f"✅ {label} set to {float(seconds)} seconds"
        }

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply settings from a parsed config.json.

        Invalid values are logged and skipped so the defaults stay in effect.

        Returns:
            List of error messages for skipped values
        """
        errors = []

        api_config = config.get('trivia_api', {})
        self.category_url = api_config.get('category_url', self.category_url)
        self.questions_url = api_config.get('questions_url', self.questions_url)

        store_config = config.get('score_store', {})
        self.score_store_url = store_config.get('database_url', self.score_store_url)
        self.score_table = store_config.get('table', self.score_table)

        quiz_config = config.get('quiz', {})
        results = []
        if 'timeout' in api_config:
            results.append(self.set_api_timeout(api_config['timeout']))
        if 'default_amount' in quiz_config:
            results.append(self.set_amount(quiz_config['default_amount']))
        if 'default_difficulty' in quiz_config:
            results.append(self.set_difficulty(quiz_config['default_difficulty']))
        if 'default_type' in quiz_config:
            results.append(self.set_question_type(quiz_config['default_type']))
        if 'with_timer' in quiz_config:
            results.append(self.set_with_timer(quiz_config['with_timer']))
        if 'timer_duration' in quiz_config:
            results.append(self.set_timer_duration(quiz_config['timer_duration']))
        if 'scoring_delay' in quiz_config:
            results.append(self.set_scoring_delay(quiz_config['scoring_delay']))
        if 'error_timeout' in quiz_config:
            results.append(self.set_error_timeout(quiz_config['error_timeout']))

        errors.extend(result['error'] for result in results if not result['success'])
        if errors:
            self.logger.warning(f"Skipped {len(errors)} invalid configuration values")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        if not self._options.amount.isdigit() or not (
                self.MIN_AMOUNT <= int(self._options.amount) <= self.MAX_AMOUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question amount: {self._options.amount}")

        if self.scoring_delay < 0:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid scoring delay: {self.scoring_delay}")

        if self.error_timeout <= 0:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid error timeout: {self.error_timeout}")

        if not self.score_store_url:
            validation_result["valid"] = False
            validation_result["issues"].append("Score store URL is not configured")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        category_str = str(self._options.category) if self._options.category is not None else "any"
        timer_str = f"{self._timer_duration} seconds" if self._with_timer else "off"

        return (
            f"Quiz Settings:\n"
            f"• Questions: {self._options.amount}\n"
            f"• Category: {category_str}\n"
            f"• Difficulty: {self._options.difficulty or 'any'}\n"
            f"• Type: {self._options.type or 'any'}\n"
            f"• Timer: {timer_str}"
        )
