from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra='ignore')

    # OpenAI settings
    openai_api_key: str = ''
    chat_model: str = 'gpt-4.1-mini'
    extraction_model: str = 'gpt-4o-mini'

    # Messenger settings
    meta_verify_token: str = Field(
        default='',
        validation_alias=AliasChoices('META_VERIFY_TOKEN', 'VERIFY_TOKEN')
    )
    meta_page_token: str = ''
    meta_api_version: str = 'v19.0'

    # Supabase settings
    supabase_url: str = ''
    supabase_key: str = ''
    leads_table: str = 'leads'

    # Session settings
    inactivity_window_ms: int = 60_000
    max_live_turns: int = 10
    deadline_check_interval_ms: int = 1_000

    log_level: str = 'INFO'

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

def get_settings() -> Settings:
    return Settings()
