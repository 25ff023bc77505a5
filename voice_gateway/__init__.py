"""
Voice Gateway - Twilio Media Streams to OpenAI Realtime API Bridge

This application answers phone calls delivered over Twilio Media Streams and
bridges each call's audio, in real time, to an OpenAI Realtime session acting
as a spa receptionist. The model can look up availability and create bookings
through tool calls in the middle of the conversation.

Architecture Overview:
- FastAPI server exposing the Twilio media-stream WebSocket endpoint
- One CallSession state machine per call, owning both sockets
- Stateless codecs translating between the two wire protocols
- Silence-based utterance segmentation deciding when the model answers
- A closed tool dispatch table backed by a booking collaborator

Key Components:
- bot: Call session, realtime client, utterance segmenter and tool dispatcher
- codec: Encode/decode for the carrier and realtime protocols
- config: Constants, settings, and logging setup
- models: Wire schemas, internal events, per-call data and the session registry
- services: Booking collaborator interface and stub
- utils: PII redaction for logs
- websocket_manager: Carrier connection lifecycle and receive loop

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key
   - TWILIO_ACCOUNT_SID: Your Twilio account (checked by /ready)
   - PORT: Port to run the server on (default 8000)
   - HOST: Host to bind the server to (default 0.0.0.0)
   - LOG_LEVEL: Logging level (default INFO)

2. Start the server:
   ```bash
   python run.py
   ```

3. Point a TwiML <Connect><Stream> at wss://your-server/ws/twilio
"""
