import base64
import binascii
import json
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, model_validator

from bandhu_payments.exceptions import MalformedRequestError


class GatewayCallback(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    _raw: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @property
    def raw_response(self) -> Dict[str, Any]:
        return dict(self._raw)

    @property
    def gateway_order_id(self) -> Optional[str]:
        return None


class PayUCallback(GatewayCallback):
    gateway: Literal["payu"] = "payu"
    txnid: str = Field(min_length=1)
    status: str = Field(min_length=1)
    amount: str = Field(min_length=1)
    udf1: str = Field(min_length=1)        # carries our order id
    productinfo: str = ""
    firstname: str = ""
    email: str = ""
    udf2: str = ""
    udf3: str = ""
    udf4: str = ""
    udf5: str = ""
    key: str = ""
    mihpayid: str = ""
    hash: str = ""
    unmappedstatus: str = ""
    error_message: str = Field("", alias="error_Message")

    @property
    def transaction_id(self) -> str:
        return self.txnid

    @property
    def order_id(self) -> str:
        return self.udf1

    @property
    def gateway_reference(self) -> str:
        return self.mihpayid

    @property
    def status_token(self) -> str:
        # unmappedstatus is unsigned; it may only refine a signed failure.
        if self.status.lower() == "failure" and self.unmappedstatus.lower() == "usercancelled":
            return self.unmappedstatus
        return self.status


class RazorpayCallback(GatewayCallback):
    gateway: Literal["razorpay"] = "razorpay"
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_order_id: str = Field(min_length=1)
    razorpay_signature: str = ""
    payment_id: str = Field(alias="paymentId", min_length=1)
    order_id: str = Field(alias="orderId", min_length=1)

    @property
    def transaction_id(self) -> str:
        return self.payment_id

    @property
    def gateway_reference(self) -> str:
        return self.razorpay_payment_id

    @property
    def gateway_order_id(self) -> Optional[str]:
        return self.razorpay_order_id

    @property
    def status_token(self) -> str:
        # The checkout handler only posts back once the payment is authorized.
        return "authorized"


class PhonePeCallback(GatewayCallback):
    gateway: Literal["phonepe"] = "phonepe"
    merchant_id: str = Field(alias="merchantId", min_length=1)
    merchant_transaction_id: str = Field(alias="merchantTransactionId", min_length=1)
    provider_transaction_id: str = Field("", alias="transactionId")
    amount: str = ""
    response: str = Field(min_length=1)    # base64 JSON, covered by X-VERIFY
    payment_id: str = Field("", alias="paymentId")
    order_id: str = Field(alias="orderId", min_length=1)
    x_verify: str = ""

    @model_validator(mode="after")
    def check_response(self):
        data = self.decoded_response.get("data") or {}
        echoed = data.get("merchantTransactionId")
        if echoed and echoed != self.merchant_transaction_id:
            raise ValueError("response belongs to a different merchantTransactionId")
        return self

    @property
    def decoded_response(self) -> Dict[str, Any]:
        try:
            decoded = json.loads(base64.b64decode(self.response, validate=True))
        except (binascii.Error, ValueError) as exc:
            raise ValueError("response is not base64-encoded JSON") from exc
        if not isinstance(decoded, dict):
            raise ValueError("response does not decode to an object")
        return decoded

    @property
    def transaction_id(self) -> str:
        return self.payment_id or self.merchant_transaction_id

    @property
    def gateway_reference(self) -> str:
        data = self.decoded_response.get("data") or {}
        return self.provider_transaction_id or data.get("transactionId") or ""

    @property
    def status_token(self) -> str:
        return self.decoded_response.get("code") or ""


class PaytmCallback(GatewayCallback):
    gateway: Literal["paytm"] = "paytm"
    paytm_order_id: str = Field(alias="ORDERID", min_length=1)
    txn_id: str = Field("", alias="TXNID")
    status: str = Field(alias="STATUS", min_length=1)
    amount: str = Field("", alias="TXNAMOUNT")
    resp_code: str = Field("", alias="RESPCODE")
    resp_msg: str = Field("", alias="RESPMSG")
    checksum: str = Field("", alias="CHECKSUMHASH")
    payment_id: str = Field("", alias="paymentId")
    order_id: str = Field(alias="orderId", min_length=1)

    @property
    def transaction_id(self) -> str:
        return self.payment_id or self.paytm_order_id

    @property
    def gateway_reference(self) -> str:
        return self.txn_id

    @property
    def status_token(self) -> str:
        # TXN_SUCCESS only counts with the success response code.
        if self.status.upper() == "TXN_SUCCESS" and self.resp_code not in ("", "01"):
            return "TXN_FAILURE"
        return self.status


CALLBACK_MODELS = {
    "payu": PayUCallback,
    "razorpay": RazorpayCallback,
    "phonepe": PhonePeCallback,
    "paytm": PaytmCallback,
}


def _missing_fields(exc: ValidationError) -> str:
    names = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ())) or "body"
        names.append(loc)
    return ", ".join(sorted(set(names)))


def parse_callback(gateway: str, data: Mapping[str, Any], **context: Any) -> GatewayCallback:
    """Validate an inbound payload into the gateway's typed record.

    ``context`` carries values taken from outside the body (headers) and is not
    kept in the raw response.
    """
    model = CALLBACK_MODELS.get(gateway)
    if model is None:
        raise MalformedRequestError(f"Unsupported payment gateway: {gateway}")
    payload = {key: value for key, value in data.items() if key != "gateway"}
    try:
        record = model.model_validate({**payload, **context, "gateway": gateway})
    except ValidationError as exc:
        raise MalformedRequestError(
            f"Invalid {gateway} callback: {_missing_fields(exc)}"
        ) from exc
    record._raw = dict(payload)
    return record


class PaymentRequest(BaseModel):
    order_id: str
    gateway: Literal["payu", "razorpay", "phonepe", "paytm"]
    firstname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
