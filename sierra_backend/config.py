"""
Configuración del backend de afilado de sierras.

Carga y valida variables de entorno necesarias para el funcionamiento del sistema.
Las variantes de comportamiento (modo de consulta de afilados, política de baja,
backend de claims) se leen una sola vez aquí y se inyectan como estrategias
en core/dependency.py.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Cargar variables de entorno desde .env.local
env_path = Path(__file__).parent.parent / '.env.local'
load_dotenv(dotenv_path=env_path)


class Config:
    """Configuración centralizada del backend."""

    # Environment
    ENVIRONMENT: str = os.getenv('ENVIRONMENT', 'development')
    TIMEZONE: str = os.getenv('TIMEZONE', 'America/Santiago')

    # Row store (PostgREST / Supabase) o memoria para desarrollo local
    STORE_BACKEND: str = os.getenv('STORE_BACKEND', 'postgrest')
    SUPABASE_URL: str = os.getenv('SUPABASE_URL', '')
    SUPABASE_KEY: str = os.getenv('SUPABASE_KEY', '')
    STORE_TIMEOUT_SECONDS: float = float(os.getenv('STORE_TIMEOUT_SECONDS', '10'))

    # Estrategias seleccionadas al inicio del proceso
    AFILADO_QUERY_MODE: str = os.getenv('AFILADO_QUERY_MODE', 'improved')
    DECOMMISSION_POLICY: str = os.getenv('DECOMMISSION_POLICY', 'reject')

    # Claims por item para lotes concurrentes
    BATCH_CLAIMS_BACKEND: str = os.getenv('BATCH_CLAIMS_BACKEND', 'none')
    REDIS_URL: str = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    BATCH_CLAIM_TTL_SECONDS: int = int(os.getenv('BATCH_CLAIM_TTL_SECONDS', '120'))

    # Límites de lotes
    MAX_BATCH_SIZE: int = int(os.getenv('MAX_BATCH_SIZE', '200'))
    RECENT_BATCHES_LIMIT: int = int(os.getenv('RECENT_BATCHES_LIMIT', '5'))

    # API Configuration
    API_HOST: str = os.getenv('API_HOST', '0.0.0.0')
    API_PORT: int = int(os.getenv('API_PORT', '8000'))

    # CORS - Orígenes permitidos
    ALLOWED_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv('ALLOWED_ORIGINS', 'http://localhost:3000').split(',')
    ]

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls) -> None:
        """
        Valida que las variables de entorno críticas estén configuradas.

        Raises:
            ValueError: Si falta alguna variable requerida o un valor de
                estrategia no es reconocido.
        """
        choices = {
            'STORE_BACKEND': (cls.STORE_BACKEND, ('postgrest', 'memory')),
            'AFILADO_QUERY_MODE': (cls.AFILADO_QUERY_MODE, ('original', 'improved')),
            'DECOMMISSION_POLICY': (cls.DECOMMISSION_POLICY, ('reject', 'force_close')),
            'BATCH_CLAIMS_BACKEND': (cls.BATCH_CLAIMS_BACKEND, ('none', 'redis')),
        }
        invalid = [
            f"{var}={value!r} (esperado: {', '.join(allowed)})"
            for var, (value, allowed) in choices.items()
            if value not in allowed
        ]
        if invalid:
            raise ValueError(f"Invalid configuration values: {'; '.join(invalid)}")

        if cls.STORE_BACKEND == 'postgrest':
            required_vars = {
                'SUPABASE_URL': cls.SUPABASE_URL,
                'SUPABASE_KEY': cls.SUPABASE_KEY,
            }
            missing = [var for var, value in required_vars.items() if not value]
            if missing:
                raise ValueError(
                    f"Missing required environment variables: {', '.join(missing)}. "
                    f"Please check your .env.local file."
                )

        if cls.MAX_BATCH_SIZE < 1:
            raise ValueError("MAX_BATCH_SIZE must be >= 1")


# Instancia global de configuración
config = Config()


if __name__ == '__main__':
    """Script para validar configuración."""
    try:
        config.validate()
        print("✅ Configuración válida")
        print(f"   - Store backend: {config.STORE_BACKEND}")
        print(f"   - Supabase URL: {config.SUPABASE_URL}")
        print(f"   - Afilado query mode: {config.AFILADO_QUERY_MODE}")
        print(f"   - Decommission policy: {config.DECOMMISSION_POLICY}")
        print(f"   - Batch claims: {config.BATCH_CLAIMS_BACKEND}")
        print(f"   - Environment: {config.ENVIRONMENT}")
        print(f"   - Allowed Origins: {config.ALLOWED_ORIGINS}")
    except ValueError as e:
        print(f"❌ Error de configuración: {e}")
        exit(1)
