"""
Sensor acquisition for the gait pipeline.

Sources deliver readings through callbacks on their own threads; the stream
helpers bridge those callbacks into asyncio queues for the controller.
"""
