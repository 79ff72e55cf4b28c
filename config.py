from dataclasses import dataclass, field, asdict
from typing import Dict
import os
import yaml
from pathlib import Path


@dataclass
class SignalWeights:
    """Weights for combining partial similarity signals"""
    luminance_histogram: float = 0.15
    structural: float = 0.15
    mean_color: float = 0.10
    shape: float = 0.20
    pattern: float = 0.10
    color_histogram: float = 0.15
    texture: float = 0.10
    symmetry: float = 0.05

    @classmethod
    def basic(cls) -> 'SignalWeights':
        """Tonal/structural/colour signals only, no pottery refinements"""
        return cls(
            luminance_histogram=0.375,
            structural=0.375,
            mean_color=0.25,
            shape=0.0,
            pattern=0.0,
            color_histogram=0.0,
            texture=0.0,
            symmetry=0.0
        )

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class SimilaritySearchConfig:
    """Configuration for similarity search"""
    working_size: int = 64  # Square resolution both images are resampled to
    similarity_threshold: float = 0.45
    max_results: int = 15
    high_confidence_threshold: float = 0.9
    rescue_factor: float = 0.7
    recent_months: int = 3
    n_workers: int = 4
    weights: SignalWeights = field(default_factory=SignalWeights)


@dataclass
class StorageConfig:
    """Configuration for the customer table and image files"""
    database_path: str = "data/studio.db"
    uploads_dir: str = "uploads"
    max_upload_bytes: int = 5 * 1024 * 1024
    max_image_dimension: int = 800
    jpeg_quality: int = 80


@dataclass
class OCRConfig:
    """Configuration for the text-detection service"""
    api_key: str = ""
    endpoint: str = "https://vision.googleapis.com/v1/images:annotate"
    timeout_seconds: float = 30.0
    max_results: int = 10


@dataclass
class ServerConfig:
    """HTTP server settings"""
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: list = field(default_factory=lambda: ["*"])


@dataclass
class SystemConfig:
    """System-wide configuration"""
    log_level: str = "INFO"
    log_dir: str = "logs"
    json_logs: bool = True

    storage: StorageConfig = field(default_factory=StorageConfig)

    similarity_search: SimilaritySearchConfig = field(
        default_factory=SimilaritySearchConfig
    )

    ocr: OCRConfig = field(default_factory=OCRConfig)

    server: ServerConfig = field(default_factory=ServerConfig)

    def save(self, path: str = "config.yaml"):
        """Save configuration to YAML file"""
        config_dict = asdict(self)
        # Secrets stay in the environment
        config_dict['ocr'].pop('api_key', None)

        with open(path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, indent=2)

    @classmethod
    def load(cls, path: str = "config.yaml") -> 'SystemConfig':
        """Load configuration from YAML file, then apply environment overrides"""
        config = cls()

        if Path(path).exists():
            with open(path, 'r') as f:
                config_dict = yaml.safe_load(f) or {}

            config.log_level = config_dict.get('log_level', config.log_level)
            config.log_dir = config_dict.get('log_dir', config.log_dir)
            config.json_logs = config_dict.get('json_logs', config.json_logs)

            # Load storage settings
            if 'storage' in config_dict:
                st = config_dict['storage']
                config.storage = StorageConfig(
                    database_path=st.get('database_path', config.storage.database_path),
                    uploads_dir=st.get('uploads_dir', config.storage.uploads_dir),
                    max_upload_bytes=st.get('max_upload_bytes', config.storage.max_upload_bytes),
                    max_image_dimension=st.get('max_image_dimension', config.storage.max_image_dimension),
                    jpeg_quality=st.get('jpeg_quality', config.storage.jpeg_quality)
                )

            # Load similarity search settings
            if 'similarity_search' in config_dict:
                ss = config_dict['similarity_search']
                defaults = config.similarity_search
                weights = SignalWeights(**ss['weights']) if 'weights' in ss else defaults.weights
                config.similarity_search = SimilaritySearchConfig(
                    working_size=ss.get('working_size', defaults.working_size),
                    similarity_threshold=ss.get('similarity_threshold', defaults.similarity_threshold),
                    max_results=ss.get('max_results', defaults.max_results),
                    high_confidence_threshold=ss.get('high_confidence_threshold', defaults.high_confidence_threshold),
                    rescue_factor=ss.get('rescue_factor', defaults.rescue_factor),
                    recent_months=ss.get('recent_months', defaults.recent_months),
                    n_workers=ss.get('n_workers', defaults.n_workers),
                    weights=weights
                )

            # Load OCR settings
            if 'ocr' in config_dict:
                oc = config_dict['ocr']
                config.ocr = OCRConfig(
                    api_key=oc.get('api_key', config.ocr.api_key),
                    endpoint=oc.get('endpoint', config.ocr.endpoint),
                    timeout_seconds=oc.get('timeout_seconds', config.ocr.timeout_seconds),
                    max_results=oc.get('max_results', config.ocr.max_results)
                )

            # Load server settings
            if 'server' in config_dict:
                sv = config_dict['server']
                config.server = ServerConfig(
                    host=sv.get('host', config.server.host),
                    port=sv.get('port', config.server.port),
                    cors_origins=sv.get('cors_origins', config.server.cors_origins)
                )

        config.apply_env()
        return config

    def apply_env(self, environ: Dict[str, str] = None):
        """Override settings from environment variables"""
        env = os.environ if environ is None else environ

        if env.get('GOOGLE_VISION_API_KEY'):
            self.ocr.api_key = env['GOOGLE_VISION_API_KEY']
        if env.get('STUDIO_DATABASE_PATH'):
            self.storage.database_path = env['STUDIO_DATABASE_PATH']
        if env.get('STUDIO_UPLOADS_DIR'):
            self.storage.uploads_dir = env['STUDIO_UPLOADS_DIR']
        if env.get('STUDIO_LOG_LEVEL'):
            self.log_level = env['STUDIO_LOG_LEVEL'].upper()
        if env.get('PORT'):
            self.server.port = int(env['PORT'])
