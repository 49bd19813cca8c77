from .audio_player import AudioLessonPlayer, AudioOutput
from .exam import AnswerAttempt, ExamMode, ExamSession, ExamState, Score, percentage
from .learning import LearningSessionController, match_voice_command
from .relay import OutboxSynthesizer, PlaylistOutput, RelayRecognizer
from .speech import CaptureState, RecognitionOptions, SpeechCaptureAdapter, SpeechPlaybackAdapter, Utterance
