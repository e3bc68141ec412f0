"""
Voice assistant core - the audio pipeline state machine.

This is the heart of the assistant that ties together:
- Voice activity gating over the rolling audio buffer
- Speech recognition and speaker identification (in parallel)
- Wake phrase, follow-up and confirmation handling
- Language model action plans and skill execution
"""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from hey_llama.assistant.conversation import (
    ConversationRole,
    ConversationTurn,
    ConversationWindow,
    PendingConfirmation,
)
from hey_llama.assistant.llm import Responder, create_responder
from hey_llama.assistant.phrases import ConfirmationReply, PhraseMatcher, classify_confirmation_reply
from hey_llama.assistant.plan import (
    ActionPlan,
    MalformedPlan,
    RespondPlan,
    SkillCall,
    build_retry_prompt,
    describe_plan,
    parse_action_plan,
)
from hey_llama.assistant.skills import (
    PermissionManager,
    SkillContext,
    SkillError,
    SkillRegistry,
    StaticPermissionManager,
)
from hey_llama.assistant.vad import (
    GateSignal,
    SpeechProbabilitySource,
    VoiceActivityGate,
    create_probability_source,
)
from hey_llama.config import AssistantConfig, AudioSettings
from hey_llama.core.audio import LOCAL_MIC, AudioBuffer, AudioFrame, AudioSource
from hey_llama.speaker.base import Identifier, NullIdentifier, Speaker
from hey_llama.stt.base import Recognizer, TranscriptionResult

logger = logging.getLogger(__name__)

MICROPHONE_PERMISSION = "microphone"
MAX_ERROR_LENGTH = 200

RECOGNITION_FAILED = "[Recognition failed]"
MISSED_FOLLOW_UP = "Sorry, I missed that. Please repeat."
CONFIRMATION_DENIED = "Okay, I won't do that."
CONFIRMATION_CANCELLED = "Okay, cancelled."


class PipelineState(Enum):
    """Pipeline state machine states."""

    IDLE = "idle"  # Not started
    LISTENING = "listening"  # Waiting for speech
    CAPTURING = "capturing"  # Speech in progress
    PROCESSING = "processing"  # Recognition + identification
    RESPONDING = "responding"  # Model round trip and skills
    ERROR = "error"  # Setup failed; terminal until start()


_STATUS_TEXT = {
    PipelineState.IDLE: "Idle",
    PipelineState.LISTENING: "Listening...",
    PipelineState.CAPTURING: "Capturing...",
    PipelineState.PROCESSING: "Processing...",
    PipelineState.RESPONDING: "Responding...",
}


@dataclass(frozen=True)
class PipelineStatus:
    """Snapshot published to status listeners."""

    state: PipelineState = PipelineState.IDLE
    error_message: Optional[str] = None
    last_transcription: Optional[str] = None
    last_command: Optional[str] = None
    last_response: Optional[str] = None
    current_speaker: Optional[Speaker] = None

    @property
    def status_text(self) -> str:
        if self.state == PipelineState.ERROR:
            return f"Error: {self.error_message}"
        return _STATUS_TEXT[self.state]


@dataclass
class CommandContext:
    """Everything known about one command when it reaches the model."""

    command: str
    speaker: Optional[Speaker] = None
    source: AudioSource = LOCAL_MIC
    timestamp: float = field(default_factory=time.time)
    conversation_history: list[ConversationTurn] = field(default_factory=list)


def bounded_error(error) -> str:
    """``[Error: ...]`` text for the response field, at most 200 characters."""
    message = str(error) or error.__class__.__name__
    text = f"[Error: {message}]"
    if len(text) > MAX_ERROR_LENGTH:
        text = f"[Error: {message[:MAX_ERROR_LENGTH - 12]}...]"
    return text


def _permission_display_name(permission: str) -> str:
    return permission.replace("_", " ").title()


class PipelineCoordinator:
    """
    Continuously-listening voice pipeline.

    One consumer thread drives the state machine. Audio arrives from the
    capture thread through ``submit_frame``; ``run()`` drains the queue and
    steps the machine one frame at a time. Only one command cycle is ever in
    flight: frames captured while a cycle runs are buffered but not
    classified.

    Usage:
        from hey_llama.assistant.core import PipelineCoordinator
        from hey_llama.assistant.audio_io import AudioInput

        coordinator = PipelineCoordinator(config=config)
        coordinator.start()
        coordinator.run(AudioInput(device=config.audio.input_device))
    """

    def __init__(
        self,
        recognizer: Optional[Recognizer] = None,
        identifier: Optional[Identifier] = None,
        responder: Optional[Responder] = None,
        skills: Optional[SkillRegistry] = None,
        permissions: Optional[PermissionManager] = None,
        config: Optional[AssistantConfig] = None,
        probability_source: Optional[SpeechProbabilitySource] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            recognizer: Speech recognizer (created from config.stt on start if None)
            identifier: Speaker identifier (NullIdentifier if None)
            responder: Language model (created from config.llm on first use if None)
            skills: Skill registry; its enabled set follows config.skills
            permissions: Permission manager (grants on request if None)
            config: Assistant configuration
            probability_source: Speech classifier (created from config.audio if None)
            clock: Time source for conversation windows and expiries
        """
        self.config = config or AssistantConfig()
        self.recognizer = recognizer
        self.identifier = identifier or NullIdentifier()
        self.responder = responder
        self._owns_responder = responder is None
        self.skills = skills if skills is not None else SkillRegistry()
        self.permissions = permissions or StaticPermissionManager()
        self._probability_source = probability_source
        self._clock = clock

        self._build_audio(self.config.audio)
        self.matcher = self._build_matcher(self.config)
        conv = self.config.conversation
        self.conversation = ConversationWindow(
            timeout_minutes=conv.timeout_minutes,
            max_turns=conv.max_turns,
            follow_up_window_seconds=conv.follow_up_window_seconds,
            confirmation_timeout_seconds=conv.confirmation_timeout_seconds,
            clock=clock,
        )
        self.skills.update_enabled(self.config.skills.enabled_skill_ids)

        self._status = PipelineStatus()
        self._status_lock = threading.Lock()
        self._listeners: list[Callable[[PipelineStatus], None]] = []

        self._pending_config: Optional[AssistantConfig] = None
        self._config_lock = threading.Lock()

        self._frames: queue.Queue = queue.Queue()
        self._cycle_lock = threading.Lock()
        self._cycle_end = 0.0  # wall time the last cycle finished
        self._executor: Optional[ThreadPoolExecutor] = None
        self._running = False

    # ── Construction helpers ──

    def _build_audio(self, audio: AudioSettings) -> None:
        self.buffer = AudioBuffer(
            max_seconds=audio.buffer_seconds,
            sample_rate=audio.sample_rate,
            lookback_ms=audio.lookback_ms,
        )
        source = self._probability_source
        if source is None:
            if audio.vad_backend == "webrtc":
                source = create_probability_source("webrtc", mode=audio.webrtc_mode)
            else:
                source = create_probability_source(audio.vad_backend, energy_threshold=audio.energy_threshold)
        self.gate = VoiceActivityGate(
            source=source,
            threshold=audio.speech_threshold,
            silence_frames=audio.silence_frames,
        )

    @staticmethod
    def _build_matcher(config: AssistantConfig) -> PhraseMatcher:
        return PhraseMatcher(
            wake_phrase=config.wake.wake_phrase,
            variants=config.wake.variants,
            closing_phrases=config.wake.closing_phrases,
        )

    def _get_responder(self) -> Responder:
        if self.responder is None:
            self.responder = create_responder(self.config.llm)
        return self.responder

    # ── Status ──

    @property
    def status(self) -> PipelineStatus:
        with self._status_lock:
            return self._status

    @property
    def state(self) -> PipelineState:
        return self.status.state

    def add_status_listener(self, callback: Callable[[PipelineStatus], None]) -> None:
        """Call ``callback`` with a fresh snapshot on every status change."""
        self._listeners.append(callback)

    def _update_status(self, **changes) -> None:
        with self._status_lock:
            new_status = replace(self._status, **changes)
            if new_status == self._status:
                return
            self._status = new_status
        for callback in list(self._listeners):
            try:
                callback(new_status)
            except Exception:
                logger.exception("Status listener error")

    def _set_state(self, state: PipelineState, error_message: Optional[str] = None) -> None:
        self._update_status(state=state, error_message=error_message)

    # ── Lifecycle ──

    def start(self) -> bool:
        """
        Load models and begin listening.

        Returns:
            True when listening, False when setup failed (state is ERROR).
        """
        if self.state not in (PipelineState.IDLE, PipelineState.ERROR):
            return True

        if not self.permissions.request(MICROPHONE_PERMISSION):
            self._fail("Microphone access denied")
            return False

        try:
            if self.recognizer is None:
                from hey_llama.stt.registry import get_recognizer

                stt = self.config.stt
                self.recognizer = get_recognizer(
                    stt.backend, model_size=stt.model_size, language=stt.language, device=stt.device
                )
            if not self.recognizer.is_model_loaded:
                self.recognizer.load_model()
        except Exception as e:
            self._fail(f"Failed to load speech model: {e}")
            return False

        try:
            if not self.identifier.is_model_loaded:
                self.identifier.load_model()
        except Exception as e:
            self._fail(f"Failed to load speaker model: {e}")
            return False

        self.gate.reset()
        self.buffer.clear()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="recognize")
        self._set_state(PipelineState.LISTENING)
        logger.info("Assistant ready! Say '%s' to start...", self.config.wake.wake_phrase)
        return True

    def _fail(self, message: str) -> None:
        logger.error("Startup failed: %s", message)
        self._set_state(PipelineState.ERROR, error_message=message)

    def shutdown(self) -> None:
        """Stop consuming audio and reset gate, buffer and follow-up state.

        A model call already in flight is not interrupted.
        """
        self.stop()
        self.gate.reset()
        self.buffer.clear()
        self.conversation.end_follow_up()
        while True:
            try:
                self._frames.get_nowait()
            except queue.Empty:
                break
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        self._update_status(
            state=PipelineState.IDLE,
            error_message=None,
            last_transcription=None,
            last_command=None,
            last_response=None,
            current_speaker=None,
        )
        logger.info("Assistant stopped")

    def run(self, audio_input=None) -> None:
        """
        Consume queued frames until ``stop()`` (blocking).

        Args:
            audio_input: Optional capture object with ``start(callback)`` and
                ``stop()``, e.g. ``AudioInput``. Its frames are fed through
                ``submit_frame``.
        """
        if self.state == PipelineState.IDLE and not self.start():
            return
        if self.state == PipelineState.ERROR:
            return

        self._running = True
        try:
            if audio_input is not None:
                audio_input.start(self.submit_frame)

            while self._running:
                try:
                    frame = self._frames.get(timeout=0.1)
                except queue.Empty:
                    continue
                self.buffer.append(frame)
                if frame.timestamp < self._cycle_end:
                    # Captured while the previous cycle was in flight
                    continue
                self._step(frame)

        except KeyboardInterrupt:
            logger.info("Stopping assistant...")
        finally:
            if audio_input is not None:
                audio_input.stop()
            self._running = False

    def run_async(self, audio_input=None) -> threading.Thread:
        """
        Run the consumer loop in a background thread.

        Returns:
            Thread running the loop
        """
        thread = threading.Thread(target=self.run, args=(audio_input,), daemon=True, name="PipelineConsumer")
        thread.start()
        return thread

    def stop(self) -> None:
        """Stop the consumer loop."""
        self._running = False

    # ── Frames ──

    def submit_frame(self, frame: AudioFrame) -> None:
        """Producer side: queue the frame for the consumer loop."""
        if self.state in (PipelineState.IDLE, PipelineState.ERROR):
            return
        self._frames.put(frame)

    def process_frame(self, frame: AudioFrame) -> Optional[GateSignal]:
        """
        Buffer and classify one frame synchronously.

        Runs a full command cycle when the frame ends an utterance.

        Returns:
            The gate signal, or None if the frame was ignored.
        """
        if self.state in (PipelineState.IDLE, PipelineState.ERROR):
            return None
        self.buffer.append(frame)
        return self._step(frame)

    def _step(self, frame: AudioFrame) -> Optional[GateSignal]:
        state = self.state
        if state in (PipelineState.IDLE, PipelineState.ERROR):
            return None

        if state == PipelineState.LISTENING and not self.gate.is_active:
            self._refresh_config_if_needed()

        try:
            signal = self.gate.classify(frame)
        except Exception:
            logger.exception("Speech classifier error")
            return None

        if state == PipelineState.LISTENING:
            if signal == GateSignal.SPEECH_START:
                self.buffer.mark_speech_start()
                self._set_state(PipelineState.CAPTURING)
        elif state == PipelineState.CAPTURING:
            if signal == GateSignal.SPEECH_END:
                self._run_cycle(frame.source)

        return signal

    # ── Command cycle ──

    def _run_cycle(self, source: AudioSource) -> None:
        with self._cycle_lock:
            self._set_state(PipelineState.PROCESSING)
            segment = self.buffer.extract_since_speech_start(source)
            try:
                self._process_segment(segment)
            except Exception as e:
                logger.exception("Error processing speech")
                self._update_status(last_response=bounded_error(e))
            finally:
                self.gate.reset()
                self._cycle_end = time.time()
                if self.state not in (PipelineState.IDLE, PipelineState.ERROR):
                    self._set_state(PipelineState.LISTENING)

    def _process_segment(self, segment: AudioFrame) -> None:
        if len(segment) == 0:
            return

        executor = self._executor
        if executor is None:
            executor = self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="recognize")

        threshold = self.config.speaker.follow_up_threshold if self.conversation.is_follow_up_active() else None

        start = time.perf_counter()
        transcribe_future = executor.submit(self.recognizer.transcribe, segment)
        identify_future = executor.submit(self.identifier.identify, segment, threshold)
        wait([transcribe_future, identify_future])

        try:
            speaker = identify_future.result()
        except Exception as e:
            logger.warning("Speaker identification failed: %s", e)
            speaker = None

        try:
            result: TranscriptionResult = transcribe_future.result()
        except Exception as e:
            logger.warning("Recognition failed: %s", e)
            self._update_status(last_transcription=RECOGNITION_FAILED, last_response=bounded_error(e))
            return

        logger.debug(
            "Recognized in %.0fms: %r (speaker=%s)",
            (time.perf_counter() - start) * 1000,
            result.text,
            speaker.name if speaker else None,
        )
        self._update_status(last_transcription=result.text, current_speaker=speaker)
        self._route_transcript(result.text, speaker, segment.source)

    def _route_transcript(self, text: str, speaker: Optional[Speaker], source: AudioSource) -> None:
        command = self.matcher.extract_command(text)
        if command is not None:
            if self.matcher.is_closing_phrase(command):
                logger.info("Closing phrase after wake phrase, ending follow-up")
                self.conversation.end_follow_up()
                return
            logger.info("Wake phrase detected, command: %r", command)
            self._update_status(last_command=command)
            self._process_command(command, speaker, source)
            return

        if self.conversation.is_follow_up_active():
            trimmed = text.strip()
            if not trimmed:
                return
            if self.matcher.is_closing_phrase(trimmed):
                logger.info("Closing phrase in follow-up, ending follow-up")
                self.conversation.end_follow_up()
                return
            if speaker is None and self.identifier.enrolled_speakers:
                logger.info("Follow-up from unidentified speaker, asking to repeat")
                self._update_status(last_response=MISSED_FOLLOW_UP)
                self.conversation.extend_follow_up()
                return
            logger.info("Follow-up command: %r", trimmed)
            self._update_status(last_command=trimmed)
            self._process_command(trimmed, speaker, source)
            return

        logger.debug("No wake phrase in %r", text)

    def _process_command(self, command: str, speaker: Optional[Speaker], source: AudioSource) -> str:
        self._set_state(PipelineState.RESPONDING)
        try:
            response = self._respond(command, speaker, source)
        except Exception as e:
            logger.exception("Error processing command")
            response = bounded_error(e)

        logger.info("Assistant: %s", response)
        self._update_status(last_response=response)
        self.conversation.extend_follow_up()
        return response

    def _respond(self, command: str, speaker: Optional[Speaker], source: AudioSource) -> str:
        pending = self.conversation.get_pending_confirmation()
        if pending is not None:
            response = self._answer_confirmation(pending, command, speaker, source)
            if response is not None:
                self._record_exchange(command, response)
                return response

        self._refresh_config_if_needed()

        history = self.conversation.recent_history()
        context = CommandContext(
            command=command,
            speaker=speaker,
            source=source,
            timestamp=self._clock(),
            conversation_history=history,
        )
        manifest = self.skills.generate_manifest()
        if manifest is not None:
            logger.debug("Enabled skills: %s", [s.id for s in self.skills.enabled_skills])

        response = self.complete_with_retry(command, context, history, manifest)
        self._record_exchange(command, response)
        return response

    def _answer_confirmation(
        self,
        pending: PendingConfirmation,
        command: str,
        speaker: Optional[Speaker],
        source: AudioSource,
    ) -> Optional[str]:
        """Handle a yes/no/cancel reply. None means the reply was something else."""
        reply = classify_confirmation_reply(command)
        if reply == ConfirmationReply.UNKNOWN:
            logger.info("Pending confirmation still active; deferring to the model")
            return None

        self.conversation.clear_pending_confirmation()
        if reply == ConfirmationReply.CONFIRM:
            call = SkillCall(skill_id=pending.skill_id, arguments=pending.arguments)
            return self.execute_skill_calls(
                [call], user_request=pending.origin_user_request, speaker=speaker, source=source
            )
        if reply == ConfirmationReply.DENY:
            return CONFIRMATION_DENIED
        return CONFIRMATION_CANCELLED

    def _record_exchange(self, command: str, response: str) -> None:
        self.conversation.add_turn(ConversationRole.USER, command)
        self.conversation.add_turn(ConversationRole.ASSISTANT, response)

    # ── Action plans ──

    def complete_with_retry(
        self,
        prompt: str,
        context: Optional[CommandContext] = None,
        history: Optional[list[ConversationTurn]] = None,
        skills_manifest: Optional[str] = None,
    ) -> str:
        """
        Ask the model, parse its action plan and execute it.

        An unparseable reply is retried once with a corrective prompt, but
        only when skills were offered. If the retry fails too, or there was no
        manifest, the original reply is returned as plain text.
        """
        responder = self._get_responder()
        history = history if history is not None else []

        raw = responder.complete(prompt, context=context, history=history, skills_manifest=skills_manifest)
        logger.debug("LLM raw reply: %s", raw)

        try:
            plan = parse_action_plan(raw)
        except MalformedPlan as e:
            if skills_manifest is None:
                logger.info("Reply is not an action plan (%s), using it as plain text", e.reason)
                return raw

            retry_raw = responder.complete(
                build_retry_prompt(prompt),
                context=context,
                history=history,
                skills_manifest=skills_manifest,
            )
            logger.debug("LLM retry reply: %s", retry_raw)
            try:
                plan = parse_action_plan(retry_raw)
            except MalformedPlan as retry_error:
                logger.info(
                    "Retry reply is not an action plan either (%s), using the original as plain text",
                    retry_error.reason,
                )
                return raw

        speaker = context.speaker if context is not None else None
        source = context.source if context is not None else LOCAL_MIC
        return self.execute_plan(plan, user_request=prompt, speaker=speaker, source=source)

    def execute_plan(
        self,
        plan: ActionPlan,
        user_request: Optional[str] = None,
        speaker: Optional[Speaker] = None,
        source: AudioSource = LOCAL_MIC,
    ) -> str:
        logger.info("Action plan: %s", describe_plan(plan))
        if isinstance(plan, RespondPlan):
            return plan.text
        return self.execute_skill_calls(plan.calls, user_request=user_request, speaker=speaker, source=source)

    def execute_skill_calls(
        self,
        calls: list[SkillCall],
        user_request: Optional[str] = None,
        speaker: Optional[Speaker] = None,
        source: AudioSource = LOCAL_MIC,
    ) -> str:
        """
        Run calls in order and join their result texts with spaces.

        A failing call contributes its failure sentence and the rest still
        run. Identical calls run once. A result asking for confirmation
        stores it, ends the batch and contributes its prompt.
        """
        results: list[str] = []
        seen: set[str] = set()

        for call in calls:
            key = call.dedupe_key()
            if key in seen:
                logger.debug("Skipping duplicate call to %s", call.skill_id)
                continue
            seen.add(key)

            skill = self.skills.get(call.skill_id)
            if skill is None:
                results.append(f"I couldn't find the skill '{call.skill_id}'.")
                continue

            if not self.skills.is_enabled(call.skill_id):
                results.append(f"The {skill.name} skill is currently disabled. You can enable it in Settings.")
                continue

            missing = self.permissions.missing_for(skill)
            if missing:
                names = ", ".join(_permission_display_name(p) for p in missing)
                results.append(
                    f"The {skill.name} skill requires {names} permission. Please grant access in System Settings."
                )
                continue

            arguments_json = call.arguments_json()
            logger.info("Executing %s with arguments: %s", call.skill_id, arguments_json)
            context = SkillContext(speaker=speaker, source=source, timestamp=self._clock())
            try:
                result = self.skills.execute(call.skill_id, arguments_json, context)
            except SkillError as e:
                logger.warning("Skill %s failed: %s", call.skill_id, e)
                results.append(f"Error with {skill.name}: {e}")
                continue
            except Exception:
                logger.exception("Skill %s raised", call.skill_id)
                results.append(f"An error occurred while running {skill.name}.")
                continue

            if result.data:
                pending = PendingConfirmation.from_skill_data(
                    result.data,
                    expires_at=self.conversation.pending_confirmation_expiry(),
                    origin_user_request=user_request,
                )
                if pending is not None:
                    logger.info("Skill %s asked for confirmation", call.skill_id)
                    self.conversation.set_pending_confirmation(pending)
                    results.append(pending.prompt)
                    break

            results.append(result.text)

        return " ".join(results)

    # ── Text entry ──

    def ask(
        self,
        text: str,
        speaker: Optional[Speaker] = None,
        source: AudioSource = LOCAL_MIC,
    ) -> Optional[str]:
        """
        Handle a typed command, skipping audio and recognition.

        A leading wake phrase is stripped if present. Returns the response,
        or None when the text was empty or a closing phrase.
        """
        with self._cycle_lock:
            previous = self.status
            command = self.matcher.extract_command(text) or text.strip()
            if not command:
                return None
            if self.matcher.is_closing_phrase(command):
                self.conversation.end_follow_up()
                return None

            self._update_status(last_transcription=text, last_command=command, current_speaker=speaker)
            response = self._process_command(command, speaker, source)
            self._set_state(previous.state, previous.error_message)
            return response

    # ── Speakers ──

    def enroll_speaker(self, name: str, samples: list[AudioFrame]) -> Speaker:
        return self.identifier.enroll(name, samples)

    def remove_speaker(self, speaker: Speaker) -> None:
        self.identifier.remove(speaker)

    # ── Configuration ──

    def update_configuration(self, config: AssistantConfig) -> None:
        """Queue a new configuration; applied at the next cycle boundary."""
        with self._config_lock:
            self._pending_config = config

    def _refresh_config_if_needed(self) -> None:
        with self._config_lock:
            config = self._pending_config
            self._pending_config = None
        if config is None:
            return

        old = self.config
        self.config = config

        self.matcher = self._build_matcher(config)

        conv = config.conversation
        self.conversation.timeout_minutes = conv.timeout_minutes
        self.conversation.max_turns = conv.max_turns
        self.conversation.follow_up_window_seconds = conv.follow_up_window_seconds
        self.conversation.confirmation_timeout_seconds = conv.confirmation_timeout_seconds

        self.skills.update_enabled(config.skills.enabled_skill_ids)

        if config.audio != old.audio and self.state != PipelineState.CAPTURING:
            self._build_audio(config.audio)

        if self._owns_responder and config.llm != old.llm:
            self.responder = None

        logger.info("Configuration updated")

    def clear_conversation(self) -> None:
        """Forget history, any pending confirmation and the follow-up window."""
        self.conversation.clear_history()
        self.conversation.clear_pending_confirmation()
        self.conversation.end_follow_up()
