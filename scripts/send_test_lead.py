import asyncio
import sys
from pathlib import Path

from supabase import create_client

# Add project root to Python path
sys.path.append(str(Path(__file__).parent.parent))

from api.services.extraction import LeadRecord
from api.services.storage import LeadStore
from lib.config import get_settings

def build_test_lead() -> LeadRecord:
    return LeadRecord(
        user_id="123456",
        client_name="Test User",
        contact_email="test@example.com",
        location="Sacramento",
        task="Mount TV",
        description="65 inch TV on drywall above the fireplace",
        conversation_summary="Testing lead storage integration",
        follow_up=True
    )

async def send_test_lead() -> bool:
    """Write one sample lead to verify the leads table and credentials"""
    settings = get_settings()
    if not settings.supabase_configured:
        print("Missing SUPABASE_URL or SUPABASE_KEY")
        return False

    store = LeadStore(
        supabase_client=create_client(settings.supabase_url, settings.supabase_key),
        leads_table=settings.leads_table
    )
    saved = await store.save_lead(build_test_lead())
    print(f"Lead saved to '{settings.leads_table}'" if saved else "Lead save failed, check the logs")
    return saved

if __name__ == "__main__":
    sys.exit(0 if asyncio.run(send_test_lead()) else 1)
