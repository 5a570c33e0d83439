import asyncio
import logging

from .extraction import LeadRecord

logger = logging.getLogger(__name__)

class LeadStore:
    def __init__(self, supabase_client, leads_table: str = 'leads'):
        self.supabase = supabase_client
        self.leads_table = leads_table
        if supabase_client is None:
            logger.warning("Supabase client not provided, leads will not be saved")
        logger.info(f"Lead store initialized with table: {leads_table}")

    async def save_lead(self, record: LeadRecord) -> bool:
        """Insert a lead record into the leads table"""
        if self.supabase is None:
            logger.warning(f"Skipping lead save for {record.user_id}: no database configured")
            return False

        data = record.to_row()
        try:
            logger.info(f"Storing lead in Supabase: {data}")
            # supabase-py is synchronous, keep it off the event loop
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(
                None,
                lambda: self.supabase.table(self.leads_table).insert(data).execute()
            )
            if hasattr(result, 'error') and result.error:
                raise Exception(f"Supabase error: {result.error}")
            return True
        except Exception as e:
            logger.error(f"Failed to store lead: {str(e)}")
            return False
