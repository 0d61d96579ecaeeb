"""send_test_webhook.py

Usage:
  $ LINE_CHANNEL_SECRET=your_secret python scripts/send_test_webhook.py --url https://xxxx.ngrok.io/callback --face 42 --inference 17

Signs a sample postback event with LINE_CHANNEL_SECRET and POSTs it to the
webhook, so the accept flow can be exercised without tapping a carousel.
"""
import os
import argparse
import hmac
import hashlib
import base64
import json
import requests


def make_event(face_id: int, inference_id: int, action: str, user_id: str) -> dict:
    return {
        "events": [
            {
                "type": "postback",
                "postback": {"data": f"action={action}&face={face_id}&inference={inference_id}"},
                "replyToken": "00000000000000000000000000000000",
                "source": {"userId": user_id, "type": "user"},
                "timestamp": 0,
                "mode": "active",
            }
        ]
    }


def make_signature(secret: str, body: bytes) -> str:
    mac = hmac.new(secret.encode('utf-8'), body, hashlib.sha256)
    return base64.b64encode(mac.digest()).decode('utf-8')


def main():
    p = argparse.ArgumentParser()
    p.add_argument('--url', '-u', default=os.environ.get('WEBHOOK_URL', 'http://localhost:5000/callback'))
    p.add_argument('--face', type=int, default=1)
    p.add_argument('--inference', type=int, default=1)
    p.add_argument('--action', choices=('accept', 'reject'), default='accept')
    p.add_argument('--user', default='U1234567890')
    args = p.parse_args()

    secret = os.environ.get('LINE_CHANNEL_SECRET')
    if not secret:
        print('ERROR: set LINE_CHANNEL_SECRET env var first')
        return

    body = json.dumps(make_event(args.face, args.inference, args.action, args.user)).encode('utf-8')
    sig = make_signature(secret, body)
    headers = {'Content-Type': 'application/json', 'X-Line-Signature': sig}

    print(f'POST {args.url} with X-Line-Signature: {sig}')
    r = requests.post(args.url, headers=headers, data=body, timeout=10)
    print('status:', r.status_code)
    print('resp:', r.text)


if __name__ == '__main__':
    main()
