import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from typing import Awaitable, Callable, Dict, Optional

from .config_manager import ConfigManager
from .data_manager import TriviaDataManager
from .models import AnswerRecord, Question, QuizSession
from .quiz_controller import QuizController
from .quiz_engine import QuestionTimer, calculate_percentage
from .score_store import ScoreStore

logger = logging.getLogger(__name__)

OPTION_LABEL_LIMIT = 80  # Discord button label limit


def build_question_embed(session: QuizSession) -> discord.Embed:
    """Render the progress, score and current question of a session."""
    question = session.current_question
    percentage = calculate_percentage(session.question_num, session.total_questions)

    embed = discord.Embed(
        title=f"❓ Question {session.question_num}/{session.total_questions}",
        description=f"**{question.question}**" if question else "",
        color=0x6699ff
    )
    embed.add_field(name="📊 Progress", value=f"{percentage}%", inline=True)
    embed.add_field(name="🏆 Score", value=str(session.score), inline=True)
    embed.add_field(name="📚 Category", value=session.current_category, inline=True)
    if session.with_timer:
        embed.set_footer(text=f"⏱️ {session.timer}s elapsed")
    return embed


def build_game_end_embed(session: QuizSession) -> discord.Embed:
    """Render the end-of-game screen with the score-save prompt."""
    if session.score.value:
        embed = discord.Embed(
            title="🙌 You got a score!",
            description=f"Final score: **{session.score.value}**",
            color=0x00ff00
        )
        embed.add_field(
            name="💾 Save it",
            value="Use `/save <name>` to save your score, or `/leaderboard` to go back",
            inline=False
        )
    else:
        embed = discord.Embed(
            title="😥 You didn't get a score!",
            description="Use `/leaderboard` to go back and try again",
            color=0xffaa00
        )
    embed.set_footer(text=f"Category: {session.current_category}")
    return embed


class AnswerView(discord.ui.View):
    """One button per answer option; accepts a single click."""

    def __init__(self, question: Question, on_answer: Callable[[discord.Interaction, "AnswerView", str], Awaitable[None]]):
        super().__init__(timeout=None)
        self.question = question
        self.answered = False
        self._on_answer = on_answer

        for index, option in enumerate(question.options):
            button = discord.ui.Button(
                label=option[:OPTION_LABEL_LIMIT],
                style=discord.ButtonStyle.secondary,
                custom_id=f"{question.id}:{index}"
            )
            button.callback = self._make_callback(option)
            self.add_item(button)

    def _make_callback(self, option: str):
        async def callback(interaction: discord.Interaction):
            await self._on_answer(interaction, self, option)
        return callback

    def lock(self, chosen: Optional[str] = None) -> None:
        """Disable every button and highlight the outcome."""
        self.answered = True
        for item in self.children:
            if not isinstance(item, discord.ui.Button):
                continue
            item.disabled = True
            full_label = self.question.options[int(item.custom_id.rsplit(":", 1)[1])]
            if full_label == self.question.answer:
                item.style = discord.ButtonStyle.success
            elif full_label == chosen:
                item.style = discord.ButtonStyle.danger


class QuizBot(commands.Bot):
    """Discord bot that runs trivia quiz sessions, one per channel."""

    def __init__(self, config=None, config_manager: Optional[ConfigManager] = None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.config_manager = config_manager or ConfigManager()
        if self.app_config:
            self.config_manager.apply_config(self.app_config)

        self.data_manager = TriviaDataManager(
            category_url=self.config_manager.category_url,
            questions_url=self.config_manager.questions_url,
            timeout=self.config_manager.api_timeout
        )
        self.score_store = ScoreStore(
            self.config_manager.score_store_url,
            table=self.config_manager.score_table,
            timeout=self.config_manager.api_timeout
        )

        self.controllers: Dict[int, QuizController] = {}
        self.channels: Dict[int, discord.abc.Messageable] = {}
        self.views: Dict[int, AnswerView] = {}
        self.timers: Dict[int, QuestionTimer] = {}
        self.timer_tick = 1.0

    async def setup_hook(self):
        """Called when the bot is starting up"""
        validation = self.config_manager.validate_settings()
        for issue in validation["issues"]:
            logger.warning(f"Configuration issue: {issue}")
        self.setup_commands()
        logger.info("Bot setup completed successfully")

    def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="categories", description="List trivia categories")
        async def categories_command(interaction: discord.Interaction):
            await self.handle_categories(interaction)

        @self.tree.command(name="set_questions", description="Set the number of questions (1-50)")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_config_result(interaction, self.config_manager.set_amount(number))

        @self.tree.command(name="set_category", description="Pick a category id, or leave empty for any")
        async def set_category_command(interaction: discord.Interaction, category_id: Optional[int] = None):
            await self.handle_config_result(interaction, self.config_manager.set_category(category_id))

        @self.tree.command(name="set_difficulty", description="Pick a difficulty, or leave empty for any")
        @app_commands.choices(difficulty=[app_commands.Choice(name=d, value=d) for d in ConfigManager.DIFFICULTIES])
        async def set_difficulty_command(interaction: discord.Interaction, difficulty: Optional[str] = None):
            await self.handle_config_result(interaction, self.config_manager.set_difficulty(difficulty))

        @self.tree.command(name="set_type", description="Pick a question type, or leave empty for any")
        @app_commands.choices(question_type=[app_commands.Choice(name=t, value=t) for t in ConfigManager.QUESTION_TYPES])
        async def set_type_command(interaction: discord.Interaction, question_type: Optional[str] = None):
            await self.handle_config_result(interaction, self.config_manager.set_question_type(question_type))

        @self.tree.command(name="timer", description="Toggle the per-question timer")
        async def timer_command(interaction: discord.Interaction):
            await self.handle_config_result(interaction, self.config_manager.toggle_with_timer())

        @self.tree.command(name="quiz", description="Start a quiz with the current settings")
        async def quiz_command(interaction: discord.Interaction):
            await self.handle_quiz(interaction)

        @self.tree.command(name="status", description="Show the quiz progress in this channel")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="save", description="Save your final score to the leaderboard")
        async def save_command(interaction: discord.Interaction, name: str):
            await self.handle_save(interaction, name)

        @self.tree.command(name="leaderboard", description="Leave the finished quiz")
        async def leaderboard_command(interaction: discord.Interaction):
            await self.handle_leaderboard(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def close(self):
        for channel_id in list(self.controllers):
            self._cancel_timer(channel_id)
            self.controllers.pop(channel_id).close()
        await super().close()

    # ----- sessions -----

    async def get_controller(self, channel_id: int, channel: discord.abc.Messageable) -> QuizController:
        """Get the channel's controller, creating and starting it on first use."""
        self.channels[channel_id] = channel
        controller = self.controllers.get(channel_id)
        if controller is None:
            controller = QuizController(
                self.data_manager,
                score_store=self.score_store,
                scoring_delay=self.config_manager.scoring_delay,
                error_timeout=self.config_manager.error_timeout,
                session_id=str(channel_id)
            )
            controller.add_listener(
                lambda event, session: self.on_session_event(channel_id, event, session)
            )
            self.controllers[channel_id] = controller
            await controller.startup()
        return controller

    async def on_session_event(self, channel_id: int, event: str, session: QuizSession):
        """Render controller events into the channel."""
        channel = self.channels.get(channel_id)
        if channel is None:
            return
        controller = self.controllers.get(channel_id)

        try:
            if event == "question" and session.current_question is not None:
                await self.present_question(channel_id, channel, session)
            elif event == "game_ended":
                await channel.send(embed=build_game_end_embed(session))
            elif event == "error" and controller is not None and controller.error:
                await channel.send(
                    embed=discord.Embed(description=controller.error, color=0xff0000),
                    delete_after=controller.errors.timeout
                )
            elif event == "reset":
                self._cancel_timer(channel_id)
                self.views.pop(channel_id, None)
        except discord.HTTPException as e:
            logger.error(f"Failed to render {event} in channel {channel_id}: {e}")

    async def present_question(self, channel_id: int, channel: discord.abc.Messageable, session: QuizSession):
        question = session.current_question
        view = AnswerView(
            question,
            lambda interaction, answered_view, option: self.handle_answer(channel_id, interaction, answered_view, option)
        )
        self.views[channel_id] = view
        await channel.send(embed=build_question_embed(session), view=view)

        if session.with_timer:
            self._start_timer(channel_id, view)

    def _start_timer(self, channel_id: int, view: AnswerView):
        self._cancel_timer(channel_id)
        controller = self.controllers[channel_id]
        timer = QuestionTimer(
            self.config_manager.get_timer_duration(),
            tick=self.timer_tick,
            name=f"question_timer:{channel_id}"
        )
        self.timers[channel_id] = timer

        def on_expired():
            if view.answered:
                return
            view.lock()
            controller.record_answer(None)

        timer.start(controller.set_timer, on_expired)

    def _cancel_timer(self, channel_id: int):
        timer = self.timers.pop(channel_id, None)
        if timer is not None:
            timer.cancel()

    async def handle_answer(self, channel_id: int, interaction: discord.Interaction, view: AnswerView, option: str):
        """Handle a click on one of the answer buttons"""
        controller = self.controllers.get(channel_id)
        if controller is None or view.answered or self.views.get(channel_id) is not view:
            await self.send_info_response(interaction, "This question has already been answered.")
            return

        self._cancel_timer(channel_id)
        view.lock(option)
        is_correct = option == view.question.answer
        controller.record_answer(AnswerRecord(is_correct_answer=is_correct))

        feedback = "✅ Correct!" if is_correct else f"❌ Wrong! The answer was **{view.question.answer}**"
        embed = build_question_embed(controller.session)
        embed.add_field(name="Result", value=f"{feedback}\nScoring...", inline=False)
        try:
            await interaction.response.edit_message(embed=embed, view=view)
        except discord.HTTPException as e:
            logger.error(f"Failed to show answer feedback in channel {channel_id}: {e}")

    # ----- command handlers -----

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="🎯 Trivia Quiz Bot Commands",
            description="Answer trivia questions and save your score to the leaderboard",
            color=0x00ff00
        )
        embed.add_field(
            name="📋 Settings",
            value=(
                "`/set_questions <number>` - Number of questions (1-50)\n"
                "`/set_category [id]` - Category filter, see `/categories`\n"
                "`/set_difficulty [level]` - easy, medium or hard\n"
                "`/set_type [type]` - multiple or boolean\n"
                "`/timer` - Toggle the per-question timer"
            ),
            inline=False
        )
        embed.add_field(
            name="🎮 Quiz",
            value=(
                "`/quiz` - Start a quiz\n"
                "`/status` - Show progress\n"
                "`/save <name>` - Save your final score\n"
                "`/leaderboard` - Leave the finished quiz"
            ),
            inline=False
        )
        embed.add_field(
            name="⚙️ Current Settings",
            value=f"```\n{self.config_manager.get_settings_summary()}\n```",
            inline=False
        )
        try:
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")

    async def handle_categories(self, interaction: discord.Interaction):
        """Handle /categories command"""
        controller = await self.get_controller(interaction.channel_id, interaction.channel)
        if not controller.categories:
            await self.send_error_response(interaction, "No categories loaded. Please try again later.")
            return

        lines = [f"`{category.id}` {category.name}" for category in controller.categories]
        embed = discord.Embed(title="📚 Categories", description="\n".join(lines)[:4000], color=0x6699ff)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_config_result(self, interaction: discord.Interaction, result: Dict):
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "⚙️ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def handle_quiz(self, interaction: discord.Interaction):
        """Handle /quiz command"""
        channel_id = interaction.channel_id
        controller = await self.get_controller(channel_id, interaction.channel)

        if controller.session.loading_questions:
            await self.send_warning_response(interaction, "Questions are already loading, please wait.")
            return

        await interaction.response.send_message("⏳ Loading questions...")
        self._cancel_timer(channel_id)
        started = await controller.submit(
            self.config_manager.get_quiz_options(),
            with_timer=self.config_manager.get_with_timer()
        )
        logger.info(f"Quiz submit in channel {channel_id} finished, started={started}")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        controller = self.controllers.get(interaction.channel_id)
        if controller is None or not controller.session.quiz_in_progress:
            await self.send_info_response(interaction, "There is no quiz in this channel. Use `/quiz` to start one.")
            return

        session = controller.session
        embed = discord.Embed(
            title=f"📊 Quiz Status - {controller.state.value.replace('_', ' ').title()}",
            color=0x6699ff
        )
        embed.add_field(name="Question", value=f"{session.question_num}/{session.total_questions}", inline=True)
        embed.add_field(name="Progress", value=f"{controller.percentage}%", inline=True)
        embed.add_field(name="Score", value=str(session.score), inline=True)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_save(self, interaction: discord.Interaction, name: str):
        """Handle /save command"""
        controller = self.controllers.get(interaction.channel_id)
        if controller is None:
            await self.send_error_response(interaction, "There is no finished quiz in this channel.")
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        if await controller.save_score(name):
            await interaction.followup.send(f"💾 Score saved for **{name.strip()}**!", ephemeral=True)
        else:
            await interaction.followup.send(f"❌ {controller.error or 'Score not saved.'}", ephemeral=True)

    async def handle_leaderboard(self, interaction: discord.Interaction):
        """Handle /leaderboard command"""
        controller = self.controllers.get(interaction.channel_id)
        if controller is not None:
            controller.return_to_leaderboard()
        await self.send_info_response(interaction, "Back at the leaderboard. Use `/quiz` to play again.")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_embed(interaction, discord.Embed(title=title, description=message, color=0xff0000))

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_embed(interaction, discord.Embed(title=title, description=message, color=0x6699ff))

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_embed(interaction, discord.Embed(title=title, description=message, color=0xffaa00))

    async def _send_embed(self, interaction: discord.Interaction, embed: discord.Embed):
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send response to user: {embed.title}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Trivia Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
