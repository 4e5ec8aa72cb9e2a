from plansearch.services.retrieval.complete_data.system_data_service import SystemDataService

__all__ = ["SystemDataService"]
