"""Configuration constants for live audio analysis."""

# Audio Configuration
DEFAULT_SAMPLE_RATE = 44100  # Hz, typical playback/capture rate
DEFAULT_CHUNK_SIZE = 256  # samples per engine callback (one hop)
CAPTURE_CHANNELS_MONO = 1  # Mono capture
CAPTURE_SAMPLE_WIDTH = 2  # 16-bit audio sample width in bytes
AUDIO_SAMPLE_MAX_VALUE = 32767.0  # Maximum value for 16-bit audio samples
AUDIO_SAMPLE_NORMALIZATION = 32768.0  # Normalization factor for 16-bit audio

# Frame Extraction
FRAME_BUFFER_SIZE = 512  # samples per analysis frame
FRAME_HOP_SIZE = 256  # samples between consecutive frames (50% overlap)
MFCC_COEFFICIENTS = 13  # number of cepstral coefficients per frame
MEL_BANDS = 26  # triangular mel filters used before the DCT
MEL_LOG_FLOOR = 1e-10  # floor applied before taking the log of mel energies

# Feature Aggregation
AGGREGATION_WINDOW_SIZE = 20  # frames collected before classification
AGGREGATION_RETAIN_SIZE = 10  # frames kept after classification (50% overlap)
FEATURE_HISTORY_SIZE = 100  # recent frames kept for average statistics

# Rule Classification thresholds (contractual values, label assignment depends on them)
SILENCE_RMS_THRESHOLD = 0.01
SILENCE_CONFIDENCE = 0.9
SPEECH_CENTROID_LOW_HZ = 1000.0
SPEECH_CENTROID_HIGH_HZ = 3000.0
SPEECH_ZCR_THRESHOLD = 0.1
SPEECH_MFCC_STD_THRESHOLD = 5.0
SPEECH_CONFIDENCE = 0.8
MUSIC_CENTROID_THRESHOLD_HZ = 2000.0
MUSIC_RMS_THRESHOLD = 0.1
MUSIC_MFCC_STD_LOW = 3.0
MUSIC_MFCC_STD_HIGH = 8.0
MUSIC_CONFIDENCE = 0.75
NOISE_MFCC_STD_THRESHOLD = 3.0
NOISE_RMS_THRESHOLD = 0.05
NOISE_CENTROID_THRESHOLD_HZ = 1000.0
NOISE_CONFIDENCE = 0.7
UNKNOWN_CONFIDENCE = 0.5

# Voting Classification (music vs speech)
VOTING_CENTROID_THRESHOLD_HZ = 2000.0
VOTING_CENTROID_WEIGHT = 2
VOTING_FLATNESS_THRESHOLD = 0.3
VOTING_FLATNESS_WEIGHT = 2
VOTING_ZCR_THRESHOLD = 0.1
VOTING_ZCR_WEIGHT = 1

# Spectrum Analyzer (mirrors a browser analyser node)
ANALYZER_FFT_SIZE = 2048
ANALYZER_SMOOTHING = 0.8  # temporal smoothing constant (0.0 to 1.0)
ANALYZER_MIN_DECIBELS = -100.0
ANALYZER_MAX_DECIBELS = -30.0

# Filter Stage
FILTER_MIN_FREQUENCY_HZ = 20.0
FILTER_MAX_FREQUENCY_HZ = 20000.0
FILTER_MIN_Q = 0.1
FILTER_MAX_Q = 20.0
FILTER_MIN_GAIN_DB = -40.0
FILTER_MAX_GAIN_DB = 40.0
FILTER_DEFAULT_FREQUENCY_HZ = 1000.0
FILTER_DEFAULT_Q = 1.0
FILTER_DEFAULT_GAIN_DB = 0.0
FILTER_NYQUIST_GUARD = 0.49  # fraction of the sample rate a centre frequency may reach
FILTER_RESPONSE_POINTS = 512  # points in the frequency response curve

# Rendering
DISPLAY_REFRESH_RATE_HZ = 60.0
SPECTROGRAM_WIDTH = 800
SPECTROGRAM_HEIGHT = 250
SPECTROGRAM_BOOST_GAIN = 3.0  # linear gain applied to raw magnitude before colour mapping
SPECTROGRAM_BOOST_OFFSET = 50.0  # offset applied after the gain
MFCC_CANVAS_WIDTH = 600
MFCC_CANVAS_HEIGHT = 150
MFCC_BAR_GAP = 2  # pixels between coefficient bars
SPECTRUM_CANVAS_WIDTH = 600
SPECTRUM_CANVAS_HEIGHT = 200
SPECTRUM_BAR_WIDTH_FACTOR = 2.5  # bar width multiplier for the filter spectrum view

# Recording
PREFERRED_MIME_TYPES = [
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/mp4",
    "audio/wav",
]
PCM_MIME_TYPE = "audio/wav"

# Callback Deadline Monitoring
BLOCK_TIMING_HISTORY_SIZE = 100  # Number of dispatch latency measurements to track
BLOCK_DEADLINE_LOG_INTERVAL = 5.0  # seconds - minimum gap between missed-deadline warnings

# Service Processing Loop
IDLE_POLL_INTERVAL = 0.01  # seconds - wait when the device has no chunk ready
ERROR_RECOVERY_SLEEP = 0.1  # seconds - sleep after processing errors
PROCESSING_STOP_TIMEOUT = 0.5  # seconds - wait for the in-flight read before cancelling
