"""
Response DTOs

DTOs for outgoing API responses. These decouple the API from the service layer
and provide a clear contract for what data the API returns.
"""
